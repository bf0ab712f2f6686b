from __future__ import annotations

from fractions import Fraction

import pytest

from tests.support.harness import MODERN, BuilderFlags, Node, assert_tree, rewrite_text

STRING_CASES = [
    pytest.param(
        '[:string_literal, [:string_content]]',
        None,
        '(str "")',
        id="empty-string",
    ),
    pytest.param(
        '[:string_literal, [:string_content, [:@tstring_content, "a\\\\tb", [1, 1]]]]',
        '[[[1, 0], :on_tstring_beg, "\\""], [[1, 1], :on_tstring_content, "a\\\\tb"], [[1, 5], :on_tstring_end, "\\""]]',
        '(str "a\\tb")',
        id="double-quoted-decodes",
    ),
    pytest.param(
        '[:string_literal, [:string_content, [:@tstring_content, "a\\\\tb", [1, 1]]]]',
        '[[[1, 0], :on_tstring_beg, "\'"], [[1, 1], :on_tstring_content, "a\\\\tb"], [[1, 5], :on_tstring_end, "\'"]]',
        '(str "a\\\\tb")',
        id="single-quoted-stays-raw",
    ),
    pytest.param(
        '[:string_literal, [:string_content, [:@tstring_content, "a\\\\tb", [1, 1]]]]',
        None,
        '(str "a\\\\tb")',
        id="no-token-stream-stays-raw",
    ),
    pytest.param(
        '[:string_literal, [:string_content, [:@tstring_content, "a", [1, 1]], '
        '[:string_embexpr, [[:vcall, [:@ident, "b", [1, 4]]]]], [:@tstring_content, "c", [1, 6]]]]',
        None,
        '(dstr (str "a") (begin (send nil :b)) (str "c"))',
        id="interpolation",
    ),
    pytest.param(
        '[:string_literal, [:string_content, [:string_embexpr, [[:void_stmt]]]]]',
        None,
        '(dstr (begin))',
        id="empty-interpolation",
    ),
    pytest.param(
        '[:string_literal, [:string_content, [:string_dvar, [:var_ref, [:@ivar, "@x", [1, 2]]]]]]',
        None,
        '(dstr (ivar :@x))',
        id="dvar-is-not-wrapped",
    ),
    pytest.param(
        '[:string_concat, [:string_literal, [:string_content, [:@tstring_content, "a", [1, 1]]]], '
        '[:string_literal, [:string_content, [:@tstring_content, "b", [1, 5]]]]]',
        None,
        '(dstr (str "a") (str "b"))',
        id="adjacent-strings",
    ),
    pytest.param(
        '[:xstring_literal, [[:@tstring_content, "ls", [1, 1]]]]',
        None,
        '(xstr (str "ls"))',
        id="xstring",
    ),
    pytest.param(
        '[:xstring_literal, [[:@tstring_content, "echo ", [1, 1]], [:string_embexpr, [[:vcall, [:@ident, "x", [1, 8]]]]]]]',
        None,
        '(xstr (str "echo ") (begin (send nil :x)))',
        id="xstring-interpolation",
    ),
    pytest.param(
        '[:regexp_literal, [[:@tstring_content, "a\\\\d", [1, 1]], [:string_embexpr, [[:vcall, [:@ident, "b", [1, 6]]]]]], '
        '[:@regexp_end, "/mi", [1, 8]]]',
        None,
        '(regexp (str "a\\\\d") (begin (send nil :b)) (regopt :i :m))',
        id="regexp",
    ),
    pytest.param(
        '[:regexp_literal, [], [:@regexp_end, "/", [1, 1]]]',
        None,
        '(regexp (regopt))',
        id="empty-regexp",
    ),
    pytest.param(
        '[:dyna_symbol, [:string_content, [:@tstring_content, "a b", [1, 2]]]]',
        None,
        '(sym :"a b")',
        id="quoted-symbol",
    ),
    pytest.param(
        '[:dyna_symbol, [:string_content, [:string_embexpr, [[:vcall, [:@ident, "x", [1, 4]]]]]]]',
        None,
        '(dsym (begin (send nil :x)))',
        id="interpolated-symbol",
    ),
    pytest.param(
        '[:symbol_literal, [:symbol, [:@ident, "foo", [1, 1]]]]',
        None,
        '(sym :foo)',
        id="symbol",
    ),
    pytest.param(
        '[:@CHAR, "?\\\\n", [1, 0]]',
        None,
        '(str "\\n")',
        id="character-literal",
    ),
]


@pytest.mark.parametrize("concrete, tokens, tree", STRING_CASES)
def test_string_family(concrete: str, tokens: str, tree: str) -> None:
    assert_tree(rewrite_text(concrete, tokens=tokens), tree)


def test_heredoc_body_decoded_from_token_stream() -> None:
    concrete = '[:program, [[:assign, [:var_field, [:@ident, "x", [1, 0]]], [:string_literal, [:string_content, [:@tstring_content, "a\\\\tb\\n", [2, 0]]]]]]]'
    live = '[[[1, 4], :on_heredoc_beg, "<<~EOS"], [[2, 0], :on_tstring_content, "a\\\\tb\\n"], [[3, 0], :on_heredoc_end, "EOS\\n"]]'
    raw = live.replace('"<<~EOS"', '"<<~\'EOS\'"')

    assert_tree(rewrite_text(concrete, tokens=live), '(lvasgn :x (str "a\\tb\\n"))')
    assert_tree(rewrite_text(concrete, tokens=raw), '(lvasgn :x (str "a\\\\tb\\n"))')


def test_squiggly_heredoc_fragment_after_interpolation_is_decoded() -> None:
    # x = <<~EOS
    #   a #{c} b\tc
    # EOS
    concrete = (
        '[:program, [[:assign, [:var_field, [:@ident, "x", [1, 0]]], [:string_literal, [:string_content, '
        '[:@tstring_content, "a ", [2, 2]], [:string_embexpr, [[:vcall, [:@ident, "c", [2, 6]]]]], '
        '[:@tstring_content, "b\\\\tc\\n", [2, 9]]]]]]]'
    )
    tokens = (
        '[[[1, 0], :on_ident, "x"], [[1, 1], :on_sp, " "], [[1, 2], :on_op, "="], [[1, 3], :on_sp, " "], '
        '[[1, 4], :on_heredoc_beg, "<<~EOS"], [[1, 10], :on_nl, "\\n"], [[2, 0], :on_ignored_sp, "  "], '
        '[[2, 2], :on_tstring_content, "a "], [[2, 4], :on_embexpr_beg, "\\#{"], [[2, 6], :on_ident, "c"], '
        '[[2, 7], :on_embexpr_end, "}"], [[2, 8], :on_tstring_content, " b\\\\tc\\n"], [[3, 0], :on_heredoc_end, "EOS\\n"]]'
    )

    assert_tree(
        rewrite_text(concrete, tokens=tokens),
        '(lvasgn :x (dstr (str "a ") (begin (send nil :c)) (str "b\\tc\\n")))',
    )


WORD_LIST_CASES = [
    pytest.param(
        '[:array, [[:@tstring_content, "a", [1, 3]], [:@tstring_content, "b", [1, 5]]]]',
        '[[[1, 0], :on_qwords_beg, "%w["], [[1, 3], :on_tstring_content, "a"], [[1, 4], :on_words_sep, " "], '
        '[[1, 5], :on_tstring_content, "b"], [[1, 6], :on_tstring_end, "]"]]',
        '(array (str "a") (str "b"))',
        id="qwords",
    ),
    pytest.param(
        '[:array, [[:@tstring_content, "a", [1, 3]], [:@tstring_content, "b", [1, 5]]]]',
        '[[[1, 0], :on_qsymbols_beg, "%i["], [[1, 3], :on_tstring_content, "a"], [[1, 4], :on_words_sep, " "], '
        '[[1, 5], :on_tstring_content, "b"], [[1, 6], :on_tstring_end, "]"]]',
        '(array (sym :a) (sym :b))',
        id="qsymbols",
    ),
    pytest.param(
        '[:array, [[[:@tstring_content, "a", [1, 3]], [:string_embexpr, [[:vcall, [:@ident, "b", [1, 6]]]]]]]]',
        '[[[1, 0], :on_words_beg, "%W["], [[1, 3], :on_tstring_content, "a"], [[1, 4], :on_embexpr_beg, "#{"], '
        '[[1, 6], :on_ident, "b"], [[1, 7], :on_embexpr_end, "}"], [[1, 8], :on_tstring_end, "]"]]',
        '(array (dstr (str "a") (begin (send nil :b))))',
        id="words-interpolated",
    ),
    pytest.param(
        '[:array, [[[:@tstring_content, "a", [1, 3]], [:string_embexpr, [[:vcall, [:@ident, "b", [1, 6]]]]]]]]',
        '[[[1, 0], :on_symbols_beg, "%I["], [[1, 3], :on_tstring_content, "a"], [[1, 4], :on_embexpr_beg, "#{"], '
        '[[1, 6], :on_ident, "b"], [[1, 7], :on_embexpr_end, "}"], [[1, 8], :on_tstring_end, "]"]]',
        '(array (dsym (str "a") (begin (send nil :b))))',
        id="symbols-interpolated",
    ),
]


@pytest.mark.parametrize("concrete, tokens, tree", WORD_LIST_CASES)
def test_word_lists(concrete: str, tokens: str, tree: str) -> None:
    assert_tree(rewrite_text(concrete, tokens=tokens), tree)


NUMBERS = [
    pytest.param('[:@int, "42", [1, 0]]', Node("int", [42]), id="int"),
    pytest.param('[:@int, "1_000", [1, 0]]', Node("int", [1000]), id="int-underscores"),
    pytest.param('[:@int, "0x1f", [1, 0]]', Node("int", [31]), id="hex"),
    pytest.param('[:@int, "0b101", [1, 0]]', Node("int", [5]), id="binary"),
    pytest.param('[:@int, "0o17", [1, 0]]', Node("int", [15]), id="octal-prefix"),
    pytest.param('[:@int, "017", [1, 0]]', Node("int", [15]), id="octal-leading-zero"),
    pytest.param('[:@int, "0d19", [1, 0]]', Node("int", [19]), id="decimal-prefix"),
    pytest.param('[:@float, "1.5e3", [1, 0]]', Node("float", [1500.0]), id="float"),
    pytest.param('[:@rational, "3r", [1, 0]]', Node("rational", [Fraction(3)]), id="rational"),
    pytest.param('[:@rational, "1.5r", [1, 0]]', Node("rational", [Fraction(3, 2)]), id="decimal-rational"),
    pytest.param('[:@imaginary, "2i", [1, 0]]', Node("complex", [complex(0, 2)]), id="imaginary"),
    pytest.param('[:@imaginary, "2.5i", [1, 0]]', Node("complex", [complex(0, 2.5)]), id="float-imaginary"),
    pytest.param('[:@imaginary, "3ri", [1, 0]]', Node("complex", [complex(0, 3.0)]), id="rational-imaginary"),
]


@pytest.mark.parametrize("concrete, node", NUMBERS)
def test_numbers(concrete: str, node: Node) -> None:
    assert rewrite_text(concrete) == node


def test_integer_leaf() -> None:
    node = rewrite_text('[:@int, "42", [1, 0]]')

    assert node.type == "int"
    assert node.children == (42,)
    assert node.location == (1, 0)


@pytest.mark.parametrize(
    "concrete, tree",
    [
        pytest.param('[:unary, :-@, [:@int, "1", [1, 1]]]', "(int -1)", id="negative-int"),
        pytest.param('[:unary, :-@, [:@float, "1.5", [1, 1]]]', "(float -1.5)", id="negative-float"),
        pytest.param('[:unary, :+@, [:@int, "1", [1, 1]]]', "(int 1)", id="positive-int"),
        pytest.param('[:unary, :~, [:@int, "5", [1, 1]]]', "(int -6)", id="inverted-int"),
        pytest.param('[:unary, :~, [:@float, "5.0", [1, 1]]]', "(send (float 5.0) :~)", id="float-not-inverted"),
    ],
)
def test_unary_literal_folding(concrete: str, tree: str) -> None:
    assert_tree(rewrite_text(concrete), tree)


KEYWORDS = [
    pytest.param('[:var_ref, [:@kw, "nil", [1, 0]]]', None, "(nil)", id="nil"),
    pytest.param('[:var_ref, [:@kw, "self", [1, 0]]]', None, "(self)", id="self"),
    pytest.param('[:var_ref, [:@kw, "true", [1, 0]]]', None, "(true)", id="true"),
    pytest.param('[:var_ref, [:@kw, "__LINE__", [3, 0]]]', None, "(int 3)", id="line-literal"),
    pytest.param('[:var_ref, [:@kw, "__FILE__", [1, 0]]]', None, '(str "lib/x.rb")', id="file-literal"),
    pytest.param(
        '[:var_ref, [:@kw, "__ENCODING__", [1, 0]]]',
        None,
        "(const (const nil :Encoding) :UTF_8)",
        id="encoding-constant",
    ),
    pytest.param('[:var_ref, [:@kw, "__ENCODING__", [1, 0]]]', MODERN, "(__ENCODING__)", id="encoding-marker"),
]


@pytest.mark.parametrize("concrete, flags, tree", KEYWORDS)
def test_keywords(concrete: str, flags, tree: str) -> None:
    assert_tree(rewrite_text(concrete, flags=flags, file="lib/x.rb"), tree)


def test_line_and_file_markers_without_literal_flag() -> None:
    flags = BuilderFlags(emit_line_file_literals=False)

    assert_tree(rewrite_text('[:var_ref, [:@kw, "__LINE__", [3, 0]]]', flags=flags), "(__LINE__)")
    assert_tree(rewrite_text('[:var_ref, [:@kw, "__FILE__", [3, 0]]]', flags=flags), "(__FILE__)")


@pytest.mark.parametrize(
    "concrete, tree",
    [
        pytest.param('[:var_ref, [:@backref, "$1", [1, 0]]]', "(nth_ref 1)", id="nth-ref"),
        pytest.param('[:var_ref, [:@backref, "$&", [1, 0]]]', '(back_ref :"$&")', id="back-ref"),
        pytest.param('[:var_ref, [:@gvar, "$stdout", [1, 0]]]', "(gvar :$stdout)", id="gvar"),
        pytest.param('[:var_ref, [:@cvar, "@@count", [1, 0]]]', "(cvar :@@count)", id="cvar"),
        pytest.param('[:top_const_ref, [:@const, "Foo", [1, 2]]]', "(const (cbase) :Foo)", id="top-const"),
        pytest.param(
            '[:const_path_ref, [:var_ref, [:@const, "A", [1, 0]]], [:@const, "B", [1, 3]]]',
            "(const (const nil :A) :B)",
            id="const-path",
        ),
    ],
)
def test_variables_and_constants(concrete: str, tree: str) -> None:
    assert_tree(rewrite_text(concrete), tree)
