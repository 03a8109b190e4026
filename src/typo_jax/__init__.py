"""typo-jax public API."""

from .ast import Call, Const, Var
from .descriptors import (
    array_element_ntype,
    complex_part_ntype,
    descriptor_cache_stats,
    descriptor_ntype,
    descriptor_values_ntype,
    parse_descriptor,
    read_descriptor,
    upgraded_array_element_ntype,
    upgraded_complex_part_ntype,
)
from .differentiate import differentiate
from .errors import (
    ArgumentIndexError,
    ArityError,
    DescriptorParseError,
    NoImplementationError,
    NotDifferentiableError,
    RegistryFrozenError,
    SpecializationDepthError,
    TypoError,
)
from .fndb import FOLDABLE, MOVABLE, FnRecord, FunctionDatabase
from .forms import (
    ExpressionStrategy,
    Wrapper,
    depends_on,
    derivative_form,
    evaluate_form,
    lower_to_jax,
    read_form,
    specialize_form,
)
from .ntype import (
    EMPTY,
    FALSE_NTYPE,
    NULL,
    TRUE_NTYPE,
    UNIVERSAL,
    Decision,
    EqlNtype,
    Ntype,
    NtypeResult,
    PrimitiveNtype,
    eql_ntype_p,
    find_primitive_ntype,
    make_eql_ntype,
    ntype_contagion,
    ntype_descriptor,
    ntype_intersection,
    ntype_of,
    ntype_subtypep,
    ntype_subtypepc2,
    ntype_union,
    typep,
)
from .numeric import default_function_database, install_numeric_library
from .primitives import PRIMITIVE_LIMIT
from .reader import ParseError
from .specialize import Specialization, Strategy, specialize
from .subtypecase import ABORT, Branch, abort_specialization, ntype_subtypecase
from .tower import Tier, combine_tiers
from .values import (
    ANY_VALUES,
    NO_VALUES,
    ValuesNtype,
    nth_value_ntype,
    single_value_ntype,
    union_values_ntypes,
    values_ntype_descriptor,
    values_ntype_subtypep,
)

__all__ = [
    "ABORT",
    "ANY_VALUES",
    "ArgumentIndexError",
    "ArityError",
    "Branch",
    "Call",
    "Const",
    "Decision",
    "DescriptorParseError",
    "EMPTY",
    "EqlNtype",
    "ExpressionStrategy",
    "FALSE_NTYPE",
    "FOLDABLE",
    "FnRecord",
    "FunctionDatabase",
    "MOVABLE",
    "NO_VALUES",
    "NULL",
    "NoImplementationError",
    "NotDifferentiableError",
    "Ntype",
    "NtypeResult",
    "PRIMITIVE_LIMIT",
    "ParseError",
    "PrimitiveNtype",
    "RegistryFrozenError",
    "Specialization",
    "SpecializationDepthError",
    "Strategy",
    "TRUE_NTYPE",
    "Tier",
    "TypoError",
    "UNIVERSAL",
    "ValuesNtype",
    "Var",
    "Wrapper",
    "abort_specialization",
    "array_element_ntype",
    "combine_tiers",
    "complex_part_ntype",
    "default_function_database",
    "depends_on",
    "derivative_form",
    "descriptor_cache_stats",
    "descriptor_ntype",
    "descriptor_values_ntype",
    "differentiate",
    "eql_ntype_p",
    "evaluate_form",
    "find_primitive_ntype",
    "install_numeric_library",
    "lower_to_jax",
    "make_eql_ntype",
    "nth_value_ntype",
    "ntype_contagion",
    "ntype_descriptor",
    "ntype_intersection",
    "ntype_of",
    "ntype_subtypecase",
    "ntype_subtypep",
    "ntype_subtypepc2",
    "ntype_union",
    "parse_descriptor",
    "read_descriptor",
    "read_form",
    "single_value_ntype",
    "specialize",
    "specialize_form",
    "typep",
    "union_values_ntypes",
    "upgraded_array_element_ntype",
    "upgraded_complex_part_ntype",
    "values_ntype_descriptor",
    "values_ntype_subtypep",
]
