"""
Parsing of free-text model answers into a CO2 figure.
"""
import re
from dataclasses import dataclass

_ENVELOPE = re.compile(r"\$([0-9]+(?:\.[0-9]+)?)\$")
_NUMBER = re.compile(r"[0-9]+(?:\.[0-9]+)?")
_UNIT = re.compile(r"^[ \t]*([a-zA-Z%/]+)")


class CO2ParseError(ValueError):
    """No usable number in the model answer."""


@dataclass(frozen=True)
class ParsedCO2:
    value: float
    unit: str = ""

    @property
    def kg(self) -> float:
        """Value in kg, converting gram answers (g, gCO2e)."""
        unit = self.unit.lower()
        if unit.startswith("g") and not unit.startswith("kg"):
            return self.value / 1000.0
        return self.value


def parse_co2_with_unit(text: str) -> ParsedCO2:
    """
    Extract the estimate from a model answer.

    The strict form is a number wrapped in dollar signs ("$12.5$"). Otherwise
    the longest number in the text is used, with the unit word that directly
    follows it, if any ("300 gCO2e").

    Raises:
        CO2ParseError: The text contains no number.
    """
    strict = _ENVELOPE.search(text)
    if strict:
        return ParsedCO2(value=float(strict.group(1)))

    matches = list(_NUMBER.finditer(text))
    if not matches:
        raise CO2ParseError(f"no co2 value found in {text[:80]!r}")

    best = matches[0]
    for match in matches[1:]:
        if len(match.group(0)) > len(best.group(0)):
            best = match

    unit = ""
    unit_match = _UNIT.match(text[best.end():])
    if unit_match:
        unit = unit_match.group(1).strip()
    return ParsedCO2(value=float(best.group(0)), unit=unit)


def parse_co2(text: str) -> float:
    """Parse a model answer into kg CO2e."""
    return parse_co2_with_unit(text).kg
