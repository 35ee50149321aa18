"""atlvm — an execution engine for rule-based model transformations.

This package runs ATL-style transformation modules (matched, lazy and
called rules plus OCL-flavoured helpers) over in-memory or host-supplied
object models.  Programs arrive as already built trees; there is no
parser in this package.

Submodules
----------
errors
    Exception hierarchy, structured error codes (``ATL-NNNN``) and
    ``SourceSpan`` / ``ErrorMessage`` diagnostics.

ast
    Expression nodes (a closed, frozen variant set), operator enums and
    the ``dispatch_expression`` table.

module
    Rules, helpers and the ``TransformationModule`` root.

values
    Runtime values: ``OclCollection``, ``OclTuple``, ``OclType`` and
    strict typed equality.

environment
    Lexically scoped variable frames.

collection_ops
    The collection operator set (``select``, ``collect``, ``sortedBy`` …).

model / navigator
    Collaborator contracts, the in-memory reference model, the helper
    table and the default ``ModelNavigator``.

evaluator
    Async expression evaluator.

trace / lazy
    The trace model and the lazy rule cache.

scheduler / pipeline
    The matching phase and the phase state machine with ``execute``.

config
    ``EngineConfig`` and ``configure_logging``.

Usage
-----
::

    from atlvm import execute, Model

    result = await execute(module, {"IN": source}, {"OUT": Model(relational)})
    print(result.statistics.objects_created)

"""

from __future__ import annotations

from atlvm.config import EngineConfig, configure_logging
from atlvm.errors import AtlError, ExecutionError, ProgramError
from atlvm.evaluator import Evaluator, evaluate
from atlvm.model import MetaClass, MetaFeature, Metamodel, Model, ModelObject
from atlvm.navigator import HelperTable, ModelNavigator
from atlvm.pipeline import ExecutionPipeline, ExecutionResult, ExecutionStatistics, execute

__version__: str = "0.1.0"
__all__: list[str] = [
    "__version__",
    "AtlError",
    "ExecutionError",
    "ProgramError",
    "EngineConfig",
    "configure_logging",
    "Evaluator",
    "evaluate",
    "MetaClass",
    "MetaFeature",
    "Metamodel",
    "Model",
    "ModelObject",
    "HelperTable",
    "ModelNavigator",
    "ExecutionPipeline",
    "ExecutionResult",
    "ExecutionStatistics",
    "execute",
]
