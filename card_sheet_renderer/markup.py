"""
Inline text markup: style tags and :placeholder: sigils.

Text such as "Deal <b>3</b> damage :fire:" becomes a flat instruction list.
Anything that does not form a well-formed tag or placeholder is kept as
literal text, so parsing never fails.
"""

# Standard Library
import dataclasses


@dataclasses.dataclass(frozen=True)
class AddText:
	text: str


@dataclasses.dataclass(frozen=True)
class PushStyle:
	name: str


@dataclasses.dataclass(frozen=True)
class PopStyle:
	name: str


@dataclasses.dataclass(frozen=True)
class InsertPlaceholder:
	name: str


Instruction = AddText | PushStyle | PopStyle | InsertPlaceholder

READING_TEXT = "text"
READING_TAG = "tag"
READING_OPEN_TAG = "open-tag"
READING_CLOSE_TAG = "close-tag"
READING_PLACEHOLDER = "placeholder"


#============================================
def is_name_char(char: str) -> bool:
	"""
	Check whether a character may appear in a tag name.

	Args:
		char: Single character.

	Returns:
		True for ASCII letters, digits, '.', '_' and '-'.
	"""
	return (char.isascii() and char.isalnum()) or char in "._-"


#============================================
def is_placeholder_char(char: str) -> bool:
	return is_name_char(char) or char == "/"


#============================================
def parse_markup(text: str) -> list[Instruction]:
	"""
	Parse inline markup into drawing instructions.

	Args:
		text: Rendered text contents.

	Returns:
		Ordered list of AddText, PushStyle, PopStyle and InsertPlaceholder.
	"""
	instructions: list[Instruction] = []
	literal: list[str] = []
	name: list[str] = []
	state = READING_TEXT

	def flush_literal() -> None:
		if literal:
			instructions.append(AddText("".join(literal)))
			literal.clear()

	def abandon(prefix: str) -> None:
		# the pending token becomes plain text
		literal.append(prefix)
		literal.extend(name)
		name.clear()

	index = 0
	while index < len(text):
		char = text[index]
		if state == READING_TEXT:
			if char == "<":
				state = READING_TAG
			elif char == ":":
				state = READING_PLACEHOLDER
			else:
				literal.append(char)
			index += 1
		elif state == READING_TAG:
			if char == "/":
				state = READING_CLOSE_TAG
				index += 1
			elif is_name_char(char):
				name.append(char)
				state = READING_OPEN_TAG
				index += 1
			else:
				abandon("<")
				state = READING_TEXT
		elif state == READING_OPEN_TAG:
			if char == ">":
				flush_literal()
				instructions.append(PushStyle("".join(name)))
				name.clear()
				state = READING_TEXT
				index += 1
			elif is_name_char(char):
				name.append(char)
				index += 1
			else:
				abandon("<")
				state = READING_TEXT
		elif state == READING_CLOSE_TAG:
			if char == ">" and not name:
				# "</>" is plain text
				literal.append("</>")
				state = READING_TEXT
				index += 1
			elif char == ">":
				flush_literal()
				instructions.append(PopStyle("".join(name)))
				name.clear()
				state = READING_TEXT
				index += 1
			elif is_name_char(char):
				name.append(char)
				index += 1
			else:
				abandon("</")
				state = READING_TEXT
		else:
			if char == ":" and not name:
				literal.append("::")
				state = READING_TEXT
				index += 1
			elif char == ":":
				flush_literal()
				instructions.append(InsertPlaceholder("".join(name)))
				name.clear()
				state = READING_TEXT
				index += 1
			elif is_placeholder_char(char):
				name.append(char)
				index += 1
			else:
				abandon(":")
				state = READING_TEXT

	if state in (READING_TAG, READING_OPEN_TAG):
		abandon("<")
	elif state == READING_CLOSE_TAG:
		abandon("</")
	elif state == READING_PLACEHOLDER:
		abandon(":")
	flush_literal()
	return instructions
