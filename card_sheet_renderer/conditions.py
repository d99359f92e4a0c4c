"""
Conditional expressions attached to styles.
"""

# Standard Library
import dataclasses
import logging
import typing

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.errors
import card_sheet_renderer.templates


TemplateAwareString = csr.templates.TemplateAwareString
ParseError = csr.errors.ParseError

logger = logging.getLogger(__name__)

OPERATORS = ("=", "!=", "in", "not in")


#============================================
def parse_operator(value: str | None) -> str | None:
	"""
	Normalize an operator token.

	Args:
		value: Operator text, or None for a truthiness test.

	Returns:
		Canonical operator, or None.
	"""
	if value is None:
		return None
	normalized = " ".join(value.split()).lower()
	if not normalized:
		return None
	if normalized == "==":
		normalized = "="
	if normalized not in OPERATORS:
		raise ParseError(f"invalid only-if operator {value!r}")
	return normalized


@dataclasses.dataclass(frozen=True)
class OnlyIf:
	left: TemplateAwareString
	operator: str | None = None
	right: tuple[TemplateAwareString, ...] = ()

	def __post_init__(self) -> None:
		if self.operator in ("=", "!=") and len(self.right) > 1:
			logger.warning(
				"only-if %r %s compares against the first of %d values only",
				self.left.source,
				self.operator,
				len(self.right),
			)

	def evaluate(self, card: typing.Any) -> bool:
		"""
		Evaluate the condition for one card.

		Args:
			card: Card supplying template fields.

		Returns:
			True if the condition holds.
		"""
		left = self.left.render(card)
		right = [value.render(card) for value in self.right]
		if self.operator is None:
			return bool(left)
		if self.operator == "=":
			return bool(right) and left == right[0]
		if self.operator == "!=":
			return bool(right) and left != right[0]
		if self.operator == "in":
			return left in right
		if self.operator == "not in":
			return left not in right
		raise ValueError(f"unknown operator {self.operator!r}")


#============================================
def all_conditions_hold(conditions: typing.Iterable[OnlyIf], card: typing.Any) -> bool:
	"""
	Check that every condition holds for a card.

	Args:
		conditions: Conditions to evaluate.
		card: Card supplying template fields.

	Returns:
		True when all conditions hold (vacuously True when empty).
	"""
	return all(condition.evaluate(card) for condition in conditions)
