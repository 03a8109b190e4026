from __future__ import annotations

from fractions import Fraction
import importlib.util
import unittest


JAX_AVAILABLE = importlib.util.find_spec("jax") is not None


@unittest.skipUnless(JAX_AVAILABLE, "jax is required to import typo_jax")
class ReaderSyntaxTests(unittest.TestCase):
    def test_reads_nested_lists_as_tuples(self) -> None:
        from typo_jax.reader import read

        self.assertEqual(
            read("(array single-float (2 *))"),
            ("array", "single-float", (2, "*")),
        )
        self.assertEqual(read("()"), ())

    def test_symbols_are_case_folded(self) -> None:
        from typo_jax.reader import read

        self.assertEqual(read("(Double-Float FIXNUM)"), ("double-float", "fixnum"))

    def test_number_literals(self) -> None:
        from typo_jax.reader import read

        cases = {
            "42": 42,
            "-7": -7,
            "3.": 3,
            "1/2": Fraction(1, 2),
            "4/2": 2,
            "2.5": 2.5,
            "1.5d0": 1.5,
            "1e3": 1000.0,
            "-.25": -0.25,
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                value = read(text)
                self.assertEqual(value, expected)
                self.assertIs(type(value), type(expected))

    def test_non_numbers_stay_symbols(self) -> None:
        from typo_jax.lexer import parse_number_text
        from typo_jax.reader import read

        for text in ("+", "-", "*", "1/0", "1+", "&rest", "float32.sin"):
            with self.subTest(text=text):
                self.assertIsNone(parse_number_text(text))
                self.assertIsInstance(read(text), str)

    def test_complex_literals(self) -> None:
        from typo_jax.reader import read

        cases = {
            "#c(1 2)": complex(1, 2),
            "#C(1.5 -2)": complex(1.5, -2),
            "#c( 1/2 0 )": Fraction(1, 2),
            "#c(3 0)": 3,
            "#c(0.0 0)": complex(0.0, 0.0),
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                value = read(text)
                self.assertEqual(value, expected)
                self.assertIs(type(value), type(expected))
        self.assertEqual(read("(eql #c(0 1))"), ("eql", 1j))

    def test_malformed_complex_literals(self) -> None:
        from typo_jax.reader import ParseError, read

        for source in ("#c(1)", "#c(1 2", "#c(a b)", "#c(1 2 3)", "#c(#c(1 2) 0)"):
            with self.subTest(source=source):
                with self.assertRaises(ParseError) as ctx:
                    read(source)
                self.assertEqual(ctx.exception.start, 0)

    def test_character_literals(self) -> None:
        from typo_jax.reader import read

        self.assertEqual(read("(member #\\a #\\space #\\Newline)"), ("member", "a", " ", "\n"))

    def test_comments_and_multiple_data(self) -> None:
        from typo_jax.reader import read_all

        self.assertEqual(read_all("a ; trailing comment\n (b 1)"), ("a", ("b", 1)))

    def test_token_spans(self) -> None:
        from typo_jax.lexer import tokenize

        tokens = tokenize("(eql 1/2)")
        self.assertEqual([tok.kind for tok in tokens], ["LPAREN", "SYMBOL", "NUMBER", "RPAREN", "EOF"])
        self.assertEqual((tokens[2].pos, tokens[2].end), (5, 8))

        tokens = tokenize("(eql #c(1 2))")
        self.assertEqual([tok.kind for tok in tokens], ["LPAREN", "SYMBOL", "NUMBER", "RPAREN", "EOF"])
        self.assertEqual((tokens[2].pos, tokens[2].end), (5, 12))

    def test_unclosed_list_reports_span(self) -> None:
        from typo_jax.reader import ParseError, read

        with self.assertRaises(ParseError) as ctx:
            read("(integer 0")
        err = ctx.exception
        self.assertEqual(err.expected, ("RPAREN",))
        self.assertEqual(err.found, "EOF")
        self.assertEqual((err.start, err.end), (10, 10))
        self.assertIn("Unclosed list", str(err))
        self.assertEqual(err.span, (10, 10))
        self.assertTrue(str(err).endswith("at span [10, 10); expected RPAREN; found EOF"))

    def test_trailing_datum_is_rejected(self) -> None:
        from typo_jax.reader import ParseError, read

        with self.assertRaises(ParseError) as ctx:
            read("integer ratio")
        self.assertEqual(ctx.exception.expected, ("EOF",))
        self.assertEqual(ctx.exception.found, "SYMBOL(ratio)")

    def test_unsupported_syntax_is_a_parse_error(self) -> None:
        from typo_jax.reader import ParseError, read

        for source in ('"text"', "'x", "#(1 2)", "#\\bogus"):
            with self.subTest(source=source):
                with self.assertRaises(ParseError):
                    read(source)

    def test_deep_nesting_reads_without_recursion(self) -> None:
        import sys

        from typo_jax.reader import read

        depth = sys.getrecursionlimit() + 50
        value = read("(" * depth + "x" + ")" * depth)
        for _ in range(depth):
            self.assertIsInstance(value, tuple)
            self.assertEqual(len(value), 1)
            value = value[0]
        self.assertEqual(value, "x")

    def test_stray_close_paren(self) -> None:
        from typo_jax.reader import ParseError, read

        with self.assertRaises(ParseError) as ctx:
            read(")")
        self.assertEqual(ctx.exception.start, 0)


if __name__ == "__main__":
    unittest.main()
