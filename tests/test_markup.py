import random

import card_sheet_renderer.markup as markup


MALFORMED_SAMPLES = [
	"<with spaces>",
	"</with spaces>",
	":with spaces:",
	"<>",
	"</>",
	"::",
	"<with spaces>,\n</with spaces>,\n:with spaces:,\n<>, </>, ::, and so on.",
]


#============================================
def test_well_formed_sequence() -> None:
	"""
	Nested tags and a placeholder produce the exact instruction stream.
	"""
	text = "Some text with <b>nested <i>tags</i></b> and even an :emoji: for good measure"
	assert markup.parse_markup(text) == [
		markup.AddText("Some text with "),
		markup.PushStyle("b"),
		markup.AddText("nested "),
		markup.PushStyle("i"),
		markup.AddText("tags"),
		markup.PopStyle("i"),
		markup.PopStyle("b"),
		markup.AddText(" and even an "),
		markup.InsertPlaceholder("emoji"),
		markup.AddText(" for good measure"),
	]


#============================================
def test_malformed_input_is_one_literal() -> None:
	"""
	Input made only of malformed forms yields a single AddText of the input.
	"""
	for sample in MALFORMED_SAMPLES:
		assert markup.parse_markup(sample) == [markup.AddText(sample)], sample


#============================================
def test_empty_input() -> None:
	assert markup.parse_markup("") == []


#============================================
def test_unterminated_tokens_flush_as_text() -> None:
	"""
	A token cut off by the end of input stays visible as text.
	"""
	assert markup.parse_markup("cost <b") == [markup.AddText("cost <b")]
	assert markup.parse_markup("cost </b") == [markup.AddText("cost </b")]
	assert markup.parse_markup("ratio :1") == [markup.AddText("ratio :1")]


#============================================
def test_abandoned_token_does_not_swallow_next_tag() -> None:
	"""
	The character that breaks a token is read again as ordinary input.
	"""
	assert markup.parse_markup("a:<b>x</b>") == [
		markup.AddText("a:"),
		markup.PushStyle("b"),
		markup.AddText("x"),
		markup.PopStyle("b"),
	]


#============================================
def test_placeholder_names_allow_slash() -> None:
	assert markup.parse_markup(":icons/fire.small:") == [markup.InsertPlaceholder("icons/fire.small")]
	assert markup.parse_markup("<a/b>") == [markup.AddText("<a/b>")]


#============================================
def test_tag_names_allow_dots_dashes_underscores() -> None:
	assert markup.parse_markup("<dark-gray>x</dark-gray>") == [
		markup.PushStyle("dark-gray"),
		markup.AddText("x"),
		markup.PopStyle("dark-gray"),
	]
	assert markup.parse_markup("<a.b_c>") == [markup.PushStyle("a.b_c")]


#============================================
def test_parser_never_raises_and_keeps_characters() -> None:
	"""
	Random inputs over the markup alphabet never raise, and literal text plus
	token text always accounts for every input character.
	"""
	alphabet = "ab <>/:.-_\n"
	generator = random.Random(1234)
	for _ in range(500):
		text = "".join(generator.choice(alphabet) for _ in range(generator.randint(0, 30)))
		instructions = markup.parse_markup(text)
		rebuilt = []
		for instruction in instructions:
			if isinstance(instruction, markup.AddText):
				rebuilt.append(instruction.text)
			elif isinstance(instruction, markup.PushStyle):
				rebuilt.append(f"<{instruction.name}>")
			elif isinstance(instruction, markup.PopStyle):
				rebuilt.append(f"</{instruction.name}>")
			else:
				rebuilt.append(f":{instruction.name}:")
		assert "".join(rebuilt) == text


#============================================
def test_empty_placeholder_and_close_tag_stay_literal() -> None:
	assert markup.parse_markup("a::b:") == [markup.AddText("a::b:")]
	assert markup.parse_markup("</>b>x") == [markup.AddText("</>b>x")]
	assert markup.parse_markup("::b:") == [markup.AddText("::b:")]
	assert markup.parse_markup(":::b:") == [markup.AddText("::"), markup.InsertPlaceholder("b")]
