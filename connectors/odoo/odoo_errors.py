"""Odoo error message classification.

Odoo reports field-level failures only as natural-language text (often with a
server traceback appended). All string matching against those messages lives
here so the retry loop only ever sees an ErrorClassification.

Recognised shapes:
- Field access rights:
    You do not have enough rights to access the fields "x_margin,x_cost" on
    Lead/Opportunity (crm.lead).
  or the older bullet form:
    Fields:
    - x_margin (allowed for groups 'Sales / Administrator')
- Compute failures: a traceback through ``_compute_<field>``
- Singleton failures: ``ValueError: Expected singleton: res.partner(1, 2)``
- Unknown fields: ``Invalid field 'x_foo' on model 'crm.lead'``
"""

import re
from typing import List

from connectors.resilient import ErrorClassification, ErrorClassifier, ErrorKind


_QUOTED_FIELDS = re.compile(r"""fields?\s*[:"'“]+\s*([\w, ]+?)\s*["'”]""", re.IGNORECASE)
_BULLET_FIELDS = re.compile(r"^\s*-\s*(\w+)\s*\(allowed for", re.MULTILINE)
_COMPUTE_METHOD = re.compile(r"_compute_(\w+)")
_SINGLETON = re.compile(r"Expected singleton", re.IGNORECASE)
_INVALID_FIELD = re.compile(r"Invalid field\s*['\"]?(\w+)['\"]?", re.IGNORECASE)
_ACCESS_HINTS = (
    "not have enough rights",
    "not allowed to access",
    "access error",
    "accesserror",
    "security restrictions",
)


def _split_names(text: str) -> List[str]:
    names = []
    for piece in text.split(","):
        piece = piece.strip()
        if piece and re.fullmatch(r"\w+", piece) and piece not in names:
            names.append(piece)
    return names


class OdooErrorClassifier(ErrorClassifier):
    """Heuristics for Odoo 14-17 error texts."""

    def classify(self, message: str) -> ErrorClassification:
        message = message or ""
        lowered = message.lower()

        # Access errors first: their text can mention compute methods too
        if any(hint in lowered for hint in _ACCESS_HINTS):
            fields = self._access_fields(message)
            if fields:
                return ErrorClassification(ErrorKind.SECURITY_RESTRICTION, fields)

        match = _INVALID_FIELD.search(message)
        if match:
            return ErrorClassification(ErrorKind.UNKNOWN_FIELD, [match.group(1)])

        if _SINGLETON.search(message):
            compute = _COMPUTE_METHOD.findall(message)
            if compute:
                return ErrorClassification(ErrorKind.COMPUTE_ERROR, _split_names(",".join(compute)))
            return ErrorClassification(ErrorKind.SINGLETON, [])

        compute = _COMPUTE_METHOD.findall(message)
        if compute:
            return ErrorClassification(ErrorKind.COMPUTE_ERROR, _split_names(",".join(compute)))

        return ErrorClassification(ErrorKind.NOT_RESTRICTION, [])

    @staticmethod
    def _access_fields(message: str) -> List[str]:
        fields: List[str] = []
        for match in _QUOTED_FIELDS.finditer(message):
            for name in _split_names(match.group(1)):
                if name not in fields:
                    fields.append(name)
        for name in _BULLET_FIELDS.findall(message):
            if name not in fields:
                fields.append(name)
        return fields
