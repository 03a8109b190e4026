from __future__ import annotations

import importlib.util
import unittest


JAX_AVAILABLE = importlib.util.find_spec("jax") is not None


def _double(*names: str) -> dict[str, str]:
    return {name: "double-float" for name in names}


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for differentiation tests")
class DerivativeFormTests(unittest.TestCase):
    def test_chain_rule_is_specialized(self) -> None:
        from typo_jax.ast import Call, Var
        from typo_jax.forms import derivative_form

        result = derivative_form("(sin (sin x))", "x", _double("x"))
        self.assertEqual(
            result.form,
            Call(
                "float64.mul",
                (
                    Call("float64.cos", (Call("float64.sin", (Var("x"),)),)),
                    Call("float64.cos", (Var("x"),)),
                ),
            ),
        )

    def test_product_sums_partials(self) -> None:
        from typo_jax.ast import Call, Var
        from typo_jax.forms import derivative_form

        self.assertEqual(
            derivative_form("(* x x)", "x", _double("x")).form,
            Call("float64.add", (Var("x"), Var("x"))),
        )

    def test_cosine(self) -> None:
        from typo_jax.ast import Call, Var
        from typo_jax.forms import derivative_form

        self.assertEqual(
            derivative_form("(cos x)", "x", _double("x")).form,
            Call("float64.neg", (Call("float64.sin", (Var("x"),)),)),
        )

    def test_constant_factors_fold(self) -> None:
        from typo_jax.ast import Call, Const, Var
        from typo_jax.forms import derivative_form

        inner = Call("float64.mul", (Const(2.0), Var("x")))
        self.assertEqual(
            derivative_form("(exp (* 2 x))", "x", _double("x")).form,
            Call("float64.mul", (Call("float64.exp", (inner,)), Const(2.0))),
        )
        self.assertEqual(
            derivative_form("(expt x 3)", "x", _double("x")).form,
            Call("float64.mul", (Const(3.0), Call("float64.mul", (Var("x"), Var("x"))))),
        )

    def test_independent_forms(self) -> None:
        from typo_jax.ast import Const, Var
        from typo_jax.forms import derivative_form

        self.assertEqual(derivative_form("(sin y)", "x", _double("y")).form, Const(0))
        self.assertEqual(derivative_form("x", "x").form, Const(1))
        self.assertEqual(derivative_form("(+ x 5)", "x", _double("x")).form, Const(1))
        self.assertEqual(derivative_form("(- x)", "x", _double("x")).form, Const(-1))
        self.assertEqual(derivative_form("(* x y)", "x", _double("x", "y")).form, Var("y"))

    def test_quotient(self) -> None:
        from typo_jax.ast import Call, Const, Var
        from typo_jax.forms import derivative_form

        quotient = Call("float64.div", (Const(1.0), Var("x")))
        self.assertEqual(
            derivative_form("(/ 1 x)", "x", _double("x")).form,
            Call("float64.neg", (Call("float64.div", (quotient, Var("x"))),)),
        )

    def test_operations_without_rules(self) -> None:
        from typo_jax.errors import NotDifferentiableError
        from typo_jax.forms import derivative_form

        with self.assertRaises(NotDifferentiableError) as ctx:
            derivative_form("(floor x)", "x", _double("x"))
        self.assertEqual(ctx.exception.name, "floor")
        with self.assertRaises(NotDifferentiableError):
            derivative_form("(< x 1)", "x", _double("x"))


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for differentiation tests")
class DifferentiateEngineTests(unittest.TestCase):
    def _x(self):
        from typo_jax.ast import Var
        from typo_jax.descriptors import descriptor_ntype
        from typo_jax.forms import Wrapper
        from typo_jax.values import single_value_ntype

        return Wrapper(Var("x"), single_value_ntype(descriptor_ntype("double-float").ntype))

    def test_partial_of_low_level_operation(self) -> None:
        from typo_jax.ast import Call, Var
        from typo_jax.differentiate import differentiate
        from typo_jax.forms import ExpressionStrategy

        x = self._x()
        result = differentiate("float64.sin", [x], 0, ExpressionStrategy())
        self.assertEqual(result.form, Call("float64.cos", (Var("x"),)))

    def test_partials_of_subtraction(self) -> None:
        from typo_jax.ast import Const
        from typo_jax.differentiate import differentiate
        from typo_jax.forms import ExpressionStrategy

        x = self._x()
        strategy = ExpressionStrategy()
        self.assertEqual(differentiate("-", [x, x, x], 0, strategy).form, Const(1))
        self.assertEqual(differentiate("-", [x, x, x], 2, strategy).form, Const(-1))

    def test_argument_index_is_checked(self) -> None:
        from typo_jax.differentiate import differentiate
        from typo_jax.errors import ArgumentIndexError
        from typo_jax.forms import ExpressionStrategy

        strategy = ExpressionStrategy()
        for index in (-1, 1, 5):
            with self.subTest(index=index):
                with self.assertRaises(ArgumentIndexError):
                    differentiate("sin", [self._x()], index, strategy)
        with self.assertRaises(IndexError):
            differentiate("sin", [self._x()], 3, strategy)

    def test_arity_is_checked_first(self) -> None:
        from typo_jax.differentiate import differentiate
        from typo_jax.errors import ArityError
        from typo_jax.forms import ExpressionStrategy

        with self.assertRaises(ArityError):
            differentiate("sin", [self._x(), self._x()], 5, ExpressionStrategy())

    def test_unknown_operation(self) -> None:
        from typo_jax.differentiate import differentiate
        from typo_jax.errors import NotDifferentiableError
        from typo_jax.fndb import FunctionDatabase
        from typo_jax.forms import ExpressionStrategy

        with self.assertRaises(NotDifferentiableError):
            differentiate("mystery", [self._x()], 0, ExpressionStrategy(), fndb=FunctionDatabase())

    def test_custom_rule_receives_context(self) -> None:
        from typo_jax.ast import Call, Var
        from typo_jax.differentiate import differentiate
        from typo_jax.forms import ExpressionStrategy
        from typo_jax.numeric import default_function_database

        fndb = default_function_database().copy()
        seen = []

        @fndb.differentiator("cube")
        def d_cube(ctx, index, x):
            seen.append((ctx.depth, index))
            return ctx.call("*", ctx.constant(3), ctx.call("*", x, x))

        fndb.update("cube", min_arguments=1, max_arguments=1)
        result = differentiate("cube", [self._x()], 0, ExpressionStrategy(), fndb=fndb)
        self.assertEqual(seen, [(0, 0)])
        self.assertEqual(result.form.fn, "float64.mul")
        self.assertEqual(result.form.args[1], Call("float64.mul", (Var("x"), Var("x"))))


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for differentiation tests")
class JaxAgreementTests(unittest.TestCase):
    FORMS = (
        "(sin (sin x))",
        "(* x x)",
        "(exp (* 2 x))",
        "(/ 1 x)",
        "(sqrt x)",
        "(expt x 3)",
        "(tan x)",
        "(log (+ x 1))",
        "(- (* 3 x) (cos x))",
        "(* (sin x) (exp x))",
        "(abs (- x 2))",
    )

    def test_derivatives_match_jax_grad(self) -> None:
        import jax

        from typo_jax.forms import derivative_form, lower_to_jax, read_form

        for source in self.FORMS:
            form = read_form(source)
            derivative = derivative_form(form, "x", _double("x"))
            symbolic = jax.jit(lower_to_jax(derivative.form, ["x"]))
            automatic = jax.grad(lower_to_jax(form, ["x"]))
            for point in (0.3, 0.7, 1.9):
                with self.subTest(source=source, x=point):
                    self.assertAlmostEqual(float(symbolic(point)), float(automatic(point)), places=3)

    def test_lowered_forms_compute_values(self) -> None:
        import jax
        import jax.numpy as jnp

        from typo_jax.forms import lower_to_jax, specialize_form

        specialized = specialize_form("(+ (* x y) (float32 2))", {"x": "single-float", "y": "integer"})
        fn = jax.jit(lower_to_jax(specialized.form, ["x", "y"]))
        out = fn(jnp.float32(1.5), 4)
        self.assertEqual(out.dtype, jnp.float32)
        self.assertAlmostEqual(float(out), 8.0)

        vectorized = lower_to_jax("(- (* x x) 1)", ["x"])
        values = jax.vmap(vectorized)(jnp.arange(3.0))
        self.assertEqual([float(v) for v in values], [-1.0, 0.0, 3.0])

    def test_lowering_errors(self) -> None:
        from typo_jax.errors import NoImplementationError
        from typo_jax.forms import lower_to_jax

        with self.assertRaises(TypeError):
            lower_to_jax("(+ x y)", ["x", "y"])(1.0)
        with self.assertRaises(NameError):
            lower_to_jax("(+ x y)", ["x"])(1.0)
        with self.assertRaises(NoImplementationError):
            lower_to_jax("(mystery x)", ["x"])(1.0)
        with self.assertRaises(NoImplementationError):
            lower_to_jax("(float64.bogus x)", ["x"])(1.0)


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for differentiation tests")
class EvaluateFormTests(unittest.TestCase):
    def test_generic_evaluation_follows_the_tower(self) -> None:
        from fractions import Fraction

        import numpy as np

        from typo_jax.forms import evaluate_form

        self.assertEqual(evaluate_form("(/ 1 3)"), Fraction(1, 3))
        self.assertEqual(evaluate_form("(/ 4 2)"), 2)
        self.assertIs(type(evaluate_form("(/ 4 2)")), int)
        self.assertEqual(evaluate_form("(sqrt -4)"), 2j)
        self.assertEqual(evaluate_form("(floor 7 2)"), 3)
        self.assertEqual(evaluate_form("(expt 2 -2)"), Fraction(1, 4))
        self.assertEqual(evaluate_form("(+ x 1/2)", {"x": 1.5}), 2.0)
        one = evaluate_form("(float32 1)")
        self.assertIsInstance(one, np.float32)
        self.assertIsInstance(evaluate_form("(+ x 1)", {"x": np.float16(1.0)}), np.float16)
        self.assertIs(evaluate_form("(< 1 2)"), True)

    def test_evaluation_errors(self) -> None:
        from typo_jax.errors import ArityError, NoImplementationError
        from typo_jax.fndb import FunctionDatabase
        from typo_jax.forms import evaluate_form

        with self.assertRaises(NameError):
            evaluate_form("(+ x 1)")
        with self.assertRaises(ArityError):
            evaluate_form("(sin 1 2)")
        with self.assertRaises(NoImplementationError):
            evaluate_form("(opaque 1)", fndb=FunctionDatabase())
        with self.assertRaises(TypeError):
            evaluate_form("(float32 x)", {"x": 1j})
        with self.assertRaises(ZeroDivisionError):
            evaluate_form("(/ 1 0)")

    def test_read_form(self) -> None:
        from typo_jax.ast import Call, Const, Var
        from typo_jax.forms import depends_on, read_form
        from typo_jax.reader import ParseError

        form = read_form("(sin (* 2 x))")
        self.assertEqual(form, Call("sin", (Call("*", (Const(2), Var("x"))),)))
        self.assertTrue(depends_on(form, "x"))
        self.assertFalse(depends_on(form, "y"))
        with self.assertRaises(ParseError):
            read_form("((f) x)")
        with self.assertRaises(ParseError):
            read_form("(1 2)")


if __name__ == "__main__":
    unittest.main()
