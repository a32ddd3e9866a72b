"""
Decision engines.

The pipeline talks to engines only through ``DecisionEngine`` / ``get_engine``. The bundled
reference engine evaluates DMN XML with a FEEL subset.
"""

from dmn_executor.engine.adapter import DecisionEngine, get_engine
from dmn_executor.engine.handles import OpaqueHandle, is_opaque
from dmn_executor.engine.runtime import ReferenceEngine

__all__ = ["DecisionEngine", "OpaqueHandle", "ReferenceEngine", "get_engine", "is_opaque"]
