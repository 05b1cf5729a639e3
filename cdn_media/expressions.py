"""Expression rewriting for transformation values.

Values such as ``"3 + $w * initialWidth"`` are rewritten into the URL form
``3_add_$w_mul_iw``. Operators are only recognized when followed by a space
or underscore, so literal values like ``-1`` or ``auto:good`` survive.

Token tables:

    =  eq     !=  ne     <  lt     >  gt     <=  lte    >=  gte
    && and    ||  or     *  mul    /  div    +   add    -   sub    ^  pow
"""

import re
from typing import Any


OPERATORS = {
    "=": "eq",
    "!=": "ne",
    "<": "lt",
    ">": "gt",
    "<=": "lte",
    ">=": "gte",
    "&&": "and",
    "||": "or",
    "*": "mul",
    "/": "div",
    "+": "add",
    "-": "sub",
    "^": "pow",
}

PREDEFINED_VARS = {
    "aspect_ratio": "ar",
    "aspectRatio": "ar",
    "current_page": "cp",
    "currentPage": "cp",
    "duration": "du",
    "face_count": "fc",
    "faceCount": "fc",
    "height": "h",
    "initial_aspect_ratio": "iar",
    "initial_duration": "idu",
    "initial_height": "ih",
    "initial_width": "iw",
    "initialAspectRatio": "iar",
    "initialDuration": "idu",
    "initialHeight": "ih",
    "initialWidth": "iw",
    "page_count": "pc",
    "page_x": "px",
    "page_y": "py",
    "pageCount": "pc",
    "pageX": "px",
    "pageY": "py",
    "tags": "tags",
    "width": "w",
}

# Longest operators first so "<=" wins over "<".
_OPERATOR_RE = re.compile(
    "(" + "|".join(re.escape(op) for op in sorted(OPERATORS, key=len, reverse=True)) + ")(?=[ _])"
)
_VARIABLE_RE = re.compile(
    r"(\$_*[^_ ]+)|("
    + "|".join(f":{name}|{name}" for name in PREDEFINED_VARS)
    + ")"
)
_SEPARATOR_RE = re.compile(r"[ _]+")
_LITERAL_RE = re.compile(r"^!.+!$")


def _replace_variable(match: re.Match) -> str:
    token = match.group(0)
    return PREDEFINED_VARS.get(token, token)


def normalize_expression(expression: Any) -> Any:
    """Rewrite an expression into its URL token form.

    Non-string values, empty strings and ``!literal!`` strings are returned
    unchanged.
    """
    if not isinstance(expression, str) or not expression or _LITERAL_RE.match(expression):
        return expression

    result = _OPERATOR_RE.sub(lambda m: OPERATORS[m.group(1)], expression)
    result = _VARIABLE_RE.sub(_replace_variable, result)
    return _SEPARATOR_RE.sub("_", result)
