import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_DELIMITERS = (',', '\n')
MAX_VALUE = 1000
CUSTOM_DELIMITER_PREFIX = '//'

# Optional sign followed by ASCII digits only; str.isdigit() would let
# other scripts and int() would let underscores through.
INTEGER_PATTERN = re.compile(r'[+-]?[0-9]+')


class NegativeNumbersError(ValueError):
    """Raised once per call, listing every negative number in the input."""

    def __init__(self, negatives: List[int]):
        self.negatives = list(negatives)
        super().__init__(
            f"Negative numbers are not allowed: {','.join(map(str, self.negatives))}"
        )


class TokenKind(Enum):
    IGNORED = "ignored"
    NEGATIVE = "negative"
    VALID = "valid"


@dataclass(frozen=True)
class Header:
    delimiters: Tuple[str, ...]
    numbers: str
    valid: bool = True


@dataclass(frozen=True)
class ClassifiedToken:
    raw: str
    kind: TokenKind
    value: int = 0


@dataclass
class CalculationResult:
    total: int = 0
    negatives: List[int] = field(default_factory=list)
    terms: List[int] = field(default_factory=list)

    def formula(self) -> str:
        if not self.terms:
            return "0 = 0"
        return f"{'+'.join(map(str, self.terms))} = {self.total}"


def _parse_bracketed(section: str) -> Optional[List[str]]:
    """Split ``[a][bb][c]`` into its delimiters, or return None if malformed."""
    delimiters = []
    pos = 0
    while pos < len(section):
        if section[pos] != '[':
            return None
        end = section.find(']', pos + 1)
        if end == -1 or end == pos + 1:
            return None
        delimiters.append(section[pos + 1:end])
        pos = end + 1
    return delimiters


def parse_header(numbers: str) -> Header:
    """Strip an optional ``//<delimiters>\\n`` header from the input.

    A header whose end cannot be found, or whose bracket groups do not
    close, leaves nothing to sum: the numbers portion comes back empty and
    ``valid`` is False.
    """
    if not numbers.startswith(CUSTOM_DELIMITER_PREFIX):
        return Header((), numbers)

    delimiter_end = numbers.find('\n')
    if delimiter_end == -1:
        logger.debug("Custom delimiter header has no terminating newline: %r", numbers)
        return Header((), '', valid=False)

    delimiter_section = numbers[len(CUSTOM_DELIMITER_PREFIX):delimiter_end]
    rest = numbers[delimiter_end + 1:]

    if not delimiter_section:
        return Header((), rest)

    if delimiter_section.startswith('['):
        custom_delimiters = _parse_bracketed(delimiter_section)
        if custom_delimiters is None:
            logger.debug("Malformed bracketed delimiter header: %r", delimiter_section)
            return Header((), '', valid=False)
    else:
        custom_delimiters = [delimiter_section]

    logger.debug("Custom delimiters: %r", custom_delimiters)
    return Header(tuple(custom_delimiters), rest)


def tokenize(numbers: str, delimiters: Sequence[str]) -> List[str]:
    """Split on any of the delimiters, each taken literally."""
    if not numbers:
        return []
    if not delimiters:
        return [numbers]
    # Longest first so '**' wins over '*' when both are active.
    unique = sorted(dict.fromkeys(delimiters), key=len, reverse=True)
    split_pattern = '|'.join(map(re.escape, unique))
    return re.split(split_pattern, numbers)


def classify(token: str, max_value: int = MAX_VALUE) -> ClassifiedToken:
    trimmed = token.strip()
    if not trimmed or not INTEGER_PATTERN.fullmatch(trimmed):
        return ClassifiedToken(token, TokenKind.IGNORED)

    number = int(trimmed)
    if number < 0:
        logger.debug("Negative token %d", number)
        return ClassifiedToken(token, TokenKind.NEGATIVE, number)
    if number > max_value:
        logger.debug("Ignoring %d, above %d", number, max_value)
        return ClassifiedToken(token, TokenKind.IGNORED)
    return ClassifiedToken(token, TokenKind.VALID, number)


def aggregate(tokens: Sequence[ClassifiedToken]) -> CalculationResult:
    result = CalculationResult()
    for token in tokens:
        if token.kind is TokenKind.VALID:
            result.total += token.value
            result.terms.append(token.value)
        else:
            if token.kind is TokenKind.NEGATIVE:
                result.negatives.append(token.value)
            result.terms.append(0)
    return result


class StringCalculator:
    def __init__(self, default_delimiters: Sequence[str] = DEFAULT_DELIMITERS,
                 max_value: int = MAX_VALUE):
        if not default_delimiters:
            raise ValueError("At least one default delimiter is required")
        if any(not d for d in default_delimiters):
            raise ValueError("Delimiters must be non-empty strings")
        if max_value < 0:
            raise ValueError(f"max_value must be non-negative, got {max_value}")
        self.default_delimiters = tuple(default_delimiters)
        self.max_value = max_value

    def calculate(self, numbers: str) -> CalculationResult:
        """Run the whole pipeline and return the raw result, negatives included."""
        if not numbers or not numbers.strip():
            return CalculationResult()

        header = parse_header(numbers)
        all_delimiters = list(self.default_delimiters) + list(header.delimiters)
        parts = tokenize(header.numbers, all_delimiters)
        return aggregate([classify(part, self.max_value) for part in parts])

    def add(self, numbers: str, formula: bool = False) -> str:
        result = self.calculate(numbers)

        if result.negatives:
            logger.info("Rejecting input with negatives: %s", result.negatives)
            raise NegativeNumbersError(result.negatives)

        if formula:
            return result.formula()
        return str(result.total)


def add(numbers: str, formula: bool = False) -> str:
    return StringCalculator().add(numbers, formula=formula)
