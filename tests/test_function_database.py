from __future__ import annotations

import importlib.util
import unittest


JAX_AVAILABLE = importlib.util.find_spec("jax") is not None


def _prim(descriptor):
    from typo_jax.ntype import find_primitive_ntype

    return find_primitive_ntype(descriptor)


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for function database tests")
class FunctionDatabaseTests(unittest.TestCase):
    def test_register_and_lookup(self) -> None:
        from typo_jax.fndb import FOLDABLE, MOVABLE, FunctionDatabase
        from typo_jax.values import single_value_ntype

        fndb = FunctionDatabase()
        record = fndb.register(
            "square",
            min_arguments=1,
            max_arguments=1,
            properties=(FOLDABLE, MOVABLE),
            values="integer",
            implementation=lambda x: x * x,
        )
        self.assertIs(fndb.lookup("square"), record)
        self.assertIn("square", fndb)
        self.assertEqual(len(fndb), 1)
        self.assertEqual(fndb.names(), ("square",))
        self.assertTrue(record.foldable)
        self.assertTrue(record.movable)
        self.assertIs(record.values, single_value_ntype(_prim("integer")))
        self.assertEqual(record.implementation(7), 49)
        self.assertIsNone(fndb.lookup("cube"))

    def test_values_accept_descriptors_and_values_ntypes(self) -> None:
        from typo_jax.fndb import FunctionDatabase
        from typo_jax.values import ANY_VALUES, ValuesNtype

        fndb = FunctionDatabase()
        record = fndb.register("divmod", values=("values", "integer", "real"))
        self.assertEqual(record.values, ValuesNtype(required=(_prim("integer"), _prim("real"))))
        self.assertFalse(record.values.single_valued)
        self.assertIs(fndb.register("anything").values, ANY_VALUES)
        explicit = ValuesNtype(optional=(_prim("t"),))
        self.assertIs(fndb.register("maybe", values=explicit).values, explicit)

    def test_invalid_registrations(self) -> None:
        from typo_jax.fndb import FunctionDatabase

        fndb = FunctionDatabase()
        with self.assertRaises(ValueError):
            fndb.register("f", properties=("pure",))
        with self.assertRaises(ValueError):
            fndb.register("f", min_arguments=-1)
        with self.assertRaises(ValueError):
            fndb.register("f", min_arguments=2, max_arguments=1)
        self.assertNotIn("f", fndb)

    def test_arity(self) -> None:
        from typo_jax.errors import ArityError
        from typo_jax.fndb import FunctionDatabase

        fndb = FunctionDatabase()
        record = fndb.register("pair", min_arguments=2, max_arguments=2)
        self.assertTrue(record.accepts(2))
        self.assertFalse(record.accepts(1))
        self.assertFalse(record.accepts(3))
        self.assertIs(fndb.check_arity("pair", 2), record)
        with self.assertRaises(ArityError) as ctx:
            fndb.check_arity("pair", 3)
        err = ctx.exception
        self.assertEqual((err.name, err.count, err.min_arguments, err.max_arguments), ("pair", 3, 2, 2))
        self.assertIn("[2, 2]", str(err))
        variadic = fndb.register("sum")
        self.assertTrue(variadic.accepts(0))
        self.assertTrue(variadic.accepts(100))

    def test_ensure_returns_an_unstored_default(self) -> None:
        from typo_jax.fndb import FunctionDatabase
        from typo_jax.values import ANY_VALUES

        fndb = FunctionDatabase()
        record = fndb.ensure("opaque")
        self.assertEqual(record.name, "opaque")
        self.assertEqual((record.min_arguments, record.max_arguments), (0, None))
        self.assertEqual(record.properties, frozenset())
        self.assertIs(record.values, ANY_VALUES)
        self.assertIsNone(record.specializer)
        self.assertIsNone(record.differentiator)
        self.assertNotIn("opaque", fndb)

    def test_update_and_decorators(self) -> None:
        from typo_jax.fndb import FunctionDatabase

        fndb = FunctionDatabase()
        fndb.register("f", min_arguments=1, max_arguments=1)

        @fndb.specializer("f")
        def specialize_f(ctx, x):
            return x

        @fndb.differentiator("f")
        def differentiate_f(ctx, index, x):
            return ctx.constant(0)

        record = fndb.lookup("f")
        self.assertIs(record.specializer, specialize_f)
        self.assertIs(record.differentiator, differentiate_f)
        self.assertEqual(record.max_arguments, 1)

        updated = fndb.update("f", values="double-float")
        self.assertIs(updated.values.required[0], _prim("double-float"))
        self.assertIs(updated.specializer, specialize_f)

        fndb.update("g", max_arguments=2)
        self.assertEqual(fndb.lookup("g").max_arguments, 2)

    def test_freeze(self) -> None:
        from typo_jax.errors import RegistryFrozenError
        from typo_jax.fndb import FunctionDatabase

        fndb = FunctionDatabase()
        fndb.register("f")
        self.assertFalse(fndb.frozen)
        self.assertIs(fndb.freeze(), fndb)
        self.assertTrue(fndb.frozen)
        with self.assertRaises(RegistryFrozenError):
            fndb.register("g")
        with self.assertRaises(RegistryFrozenError):
            fndb.update("f", max_arguments=3)
        with self.assertRaises(RegistryFrozenError):
            fndb.specializer("f")(lambda ctx, *args: None)
        self.assertEqual(fndb.names(), ("f",))

        thawed = fndb.copy()
        self.assertFalse(thawed.frozen)
        thawed.register("g")
        self.assertIn("g", thawed)
        self.assertNotIn("g", fndb)
        self.assertIs(thawed.lookup("f"), fndb.lookup("f"))

    def test_registration_is_logged(self) -> None:
        from typo_jax.fndb import FunctionDatabase

        fndb = FunctionDatabase()
        with self.assertLogs("typo_jax.fndb", level="DEBUG") as logs:
            fndb.register("f")
            fndb.register("f", min_arguments=1)
        self.assertEqual(len(logs.records), 2)
        self.assertIn("Registered function record 'f'", logs.output[0])
        self.assertIn("Replaced function record 'f'", logs.output[1])


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for function database tests")
class NumericLibraryTests(unittest.TestCase):
    def test_default_database_is_shared_and_frozen(self) -> None:
        from typo_jax.numeric import default_function_database

        fndb = default_function_database()
        self.assertIs(default_function_database(), fndb)
        self.assertTrue(fndb.frozen)

    def test_registered_operations(self) -> None:
        from typo_jax.numeric import default_function_database

        fndb = default_function_database()
        for name in (
            "+",
            "-",
            "*",
            "/",
            "expt",
            "floor",
            "sqrt",
            "<",
            "=",
            "float16",
            "complex128",
            "integer.add",
            "integer.expt",
            "rational.div",
            "float32.sin",
            "complex64.sqrt",
        ):
            with self.subTest(name=name):
                self.assertIn(name, fndb)
        for name in ("integer.div", "integer.sin", "complex128.lt", "complex64.lt", "rational"):
            with self.subTest(name=name):
                self.assertNotIn(name, fndb)

    def test_record_shapes(self) -> None:
        from typo_jax.numeric import default_function_database
        from typo_jax.values import nth_value_ntype

        fndb = default_function_database()
        plus = fndb.lookup("+")
        self.assertTrue(plus.foldable and plus.movable)
        self.assertEqual((plus.min_arguments, plus.max_arguments), (0, None))
        self.assertEqual((fndb.lookup("-").min_arguments, fndb.lookup("sin").max_arguments), (1, 1))
        self.assertIs(nth_value_ntype(0, fndb.lookup("abs").values), _prim("real"))
        self.assertIs(nth_value_ntype(0, fndb.lookup("<").values), _prim("boolean"))
        self.assertIs(nth_value_ntype(0, fndb.lookup("complex64.abs").values), _prim("single-float"))
        self.assertIs(nth_value_ntype(0, fndb.lookup("float32.sqrt").values), _prim("number"))
        self.assertIs(nth_value_ntype(0, fndb.lookup("float32.sin").values), _prim("single-float"))

        floor = fndb.lookup("floor")
        self.assertIsNone(floor.specializer)
        self.assertIsNone(floor.differentiator)
        self.assertEqual(floor.implementation(7, 2), (3, 1))
        self.assertIsNone(fndb.lookup("<").differentiator)
        self.assertIsNotNone(fndb.lookup("float64.mul").differentiator)
        self.assertIsNone(fndb.lookup("float64.lt").differentiator)

    def test_low_level_implementations(self) -> None:
        from fractions import Fraction

        import numpy as np

        from typo_jax.numeric import default_function_database

        fndb = default_function_database()

        def run(name, *args):
            return fndb.lookup(name).implementation(*args)

        self.assertEqual(run("rational.add", Fraction(1, 2), Fraction(1, 2)), 1)
        self.assertIs(type(run("rational.add", Fraction(1, 2), Fraction(1, 2))), int)
        self.assertEqual(run("rational.div", 3, 6), Fraction(1, 2))
        with self.assertRaises(ValueError):
            run("integer.expt", 2, -1)
        self.assertEqual(run("float64.sqrt", -4.0), 2j)
        self.assertIsInstance(run("float32.add", np.float32(1), np.float32(2)), np.float32)
        self.assertIsInstance(run("float16.mul", np.float16(1.5), np.float16(2)), np.float16)
        root = run("float32.sqrt", np.float32(-4.0))
        self.assertIsInstance(root, np.complex64)
        self.assertAlmostEqual(complex(root), 2j)
        self.assertIsInstance(run("complex64.abs", np.complex64(3 + 4j)), np.float32)
        self.assertIs(run("float32.lt", np.float32(1), np.float32(2)), True)
        self.assertEqual(run("float64", 3), 3.0)
        with self.assertRaises(TypeError):
            run("float64", 1j)
        self.assertEqual(run("floor", 7.5), (7, 0.5))
        self.assertEqual(run("floor", Fraction(-7, 2)), (-4, Fraction(1, 2)))


if __name__ == "__main__":
    unittest.main()
