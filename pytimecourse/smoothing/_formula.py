"""
Model formula parsing for smoothing-spline ANOVA.

Supports the R-style subset the interval pipeline needs:

    value ~ time * group            time + group + time:group
    value ~ time + group + time:group
    value ~ time * group + temperature

Numeric variables (time and covariates) enter as cubic-spline main
effects; `group` as a nominal main effect; interactions pair one numeric
variable with `group`. The intercept is always present.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from pytimecourse.core.exceptions import ValidationError

DEFAULT_FORMULA = "value ~ time * group"
RESPONSE = "value"
FACTOR = "group"
INTERCEPT = "1"


@dataclass(frozen=True)
class ModelFormula:
    """
    Parsed model formula.

    Attributes:
        text: The formula as given
        terms: Canonical term names in order of appearance. Main effects
            are variable names, interactions are '<numeric>:group'.
    """
    text: str
    terms: tuple[str, ...]

    @property
    def numeric_variables(self) -> tuple[str, ...]:
        """Numeric variables referenced anywhere in the formula."""
        seen: list[str] = []
        for term in self.terms:
            var = term.split(":")[0]
            if var != FACTOR and var not in seen:
                seen.append(var)
        return tuple(seen)

    @property
    def uses_group(self) -> bool:
        return any(FACTOR in term.split(":") for term in self.terms)


def parse_formula(formula: str | None, numeric_names: Sequence[str]) -> ModelFormula:
    """
    Parse `formula` against the numeric columns available in the design.

    Args:
        formula: Formula text, or None for DEFAULT_FORMULA.
        numeric_names: Names usable as numeric variables ('time' plus
            covariate names).

    Returns:
        ModelFormula with canonical, de-duplicated terms.

    Raises:
        ValidationError: Malformed formula, wrong response, unknown
            variable, or an unsupported interaction.
    """
    text = DEFAULT_FORMULA if formula is None else formula
    if not isinstance(text, str):
        raise ValidationError(f"formula must be a string, got {type(text).__name__}")

    sides = text.split("~")
    if len(sides) != 2:
        raise ValidationError(f"formula must contain exactly one '~': {text!r}")

    response = sides[0].strip()
    if response != RESPONSE:
        raise ValidationError(
            f"formula response must be {RESPONSE!r}, got {response!r}"
        )

    rhs = sides[1].replace(" ", "")
    if not rhs:
        raise ValidationError(f"formula has no terms: {text!r}")

    known = set(numeric_names) | {FACTOR}
    terms: list[str] = []
    for token in rhs.split("+"):
        if token == "":
            raise ValidationError(f"empty term in formula: {text!r}")
        if token == INTERCEPT:
            continue
        if token in ("0", "-1") or "-" in token:
            raise ValidationError(
                f"removing the intercept is not supported: {text!r}"
            )
        if "*" in token:
            parts = token.split("*")
            _check_variables(parts, known, text)
            if len(parts) != 2:
                raise ValidationError(
                    f"only two-way interactions are supported, got {token!r}"
                )
            expanded = [parts[0], parts[1], _interaction(parts, text)]
        elif ":" in token:
            parts = token.split(":")
            _check_variables(parts, known, text)
            expanded = [_interaction(parts, text)]
        else:
            _check_variables([token], known, text)
            expanded = [token]

        for term in expanded:
            if term not in terms:
                terms.append(term)

    if not terms:
        raise ValidationError(f"formula has no terms besides the intercept: {text!r}")

    return ModelFormula(text=text, terms=tuple(terms))


def canonical_term(term: str) -> str:
    """Normalize an include-term name: 'group:time' -> 'time:group'."""
    parts = [p.strip() for p in term.split(":")]
    if len(parts) == 2 and parts[0] == FACTOR:
        parts = [parts[1], parts[0]]
    return ":".join(parts)


def _check_variables(parts: Sequence[str], known: set[str], text: str) -> None:
    for var in parts:
        if var not in known:
            raise ValidationError(
                f"unknown variable {var!r} in formula {text!r}. "
                f"Available: {sorted(known)}"
            )


def _interaction(parts: Sequence[str], text: str) -> str:
    if len(parts) != 2:
        raise ValidationError(
            f"only two-way interactions are supported in {text!r}"
        )
    if FACTOR not in parts or parts[0] == parts[1]:
        raise ValidationError(
            f"interactions must pair a numeric variable with {FACTOR!r}, "
            f"got {':'.join(parts)!r}"
        )
    numeric = parts[0] if parts[1] == FACTOR else parts[1]
    return f"{numeric}:{FACTOR}"
