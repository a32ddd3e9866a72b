"""
Static structure of loaded DMN models.

These models describe what a compiled decision model declares: input data, decisions,
decision services, item definitions and business knowledge models, plus the diagnostics
produced while compiling it. All models are Pydantic v2.

The engine that compiled a Model attaches its evaluation graph as a private attribute;
nothing outside the engine reads it.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, PrivateAttr


# -----------------------------------------------------------------------------
# Diagnostics
# -----------------------------------------------------------------------------


class Severity(str, Enum):
    """Severity of a DMN diagnostic message."""

    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"


class DMNMessage(BaseModel):
    """A single diagnostic reported while compiling or evaluating a model."""

    severity: Severity = Field(..., description="ERROR, WARN or INFO")
    text: str = Field(..., description="Human-readable message")
    message_type: str = Field(
        default="GENERIC",
        description="Message tag (e.g. REQ_DEP_NOT_FOUND, FEEL_EVALUATION_ERROR)",
    )
    source_name: Optional[str] = Field(None, description="Name of the DMN element the message is about")

    @classmethod
    def error(cls, text: str, message_type: str = "GENERIC", source_name: Optional[str] = None) -> "DMNMessage":
        return cls(severity=Severity.ERROR, text=text, message_type=message_type, source_name=source_name)

    @classmethod
    def warn(cls, text: str, message_type: str = "GENERIC", source_name: Optional[str] = None) -> "DMNMessage":
        return cls(severity=Severity.WARN, text=text, message_type=message_type, source_name=source_name)


# -----------------------------------------------------------------------------
# Declarations
# -----------------------------------------------------------------------------


class InputDeclaration(BaseModel):
    """An inputData element."""

    id: str = Field(..., description="Element id")
    name: str = Field(..., description="Variable name used in expressions and in the input context")
    type_ref: Optional[str] = Field(None, description="Declared type (FEEL built-in or item definition)")


class DecisionDeclaration(BaseModel):
    """A decision element and its requirements."""

    id: str = Field(..., description="Element id")
    name: str = Field(..., description="Decision name")
    type_ref: Optional[str] = Field(None, description="Declared result type")
    required_inputs: list[str] = Field(default_factory=list, description="hrefs of required input data")
    required_decisions: list[str] = Field(default_factory=list, description="hrefs of required decisions")
    required_knowledge: list[str] = Field(default_factory=list, description="hrefs of required BKMs / services")


class DecisionServiceDeclaration(BaseModel):
    """
    A decision service: a named subset of the model's decisions with an explicit
    input/output contract. Reference lists hold raw hrefs as written in the document.
    """

    id: str = Field(..., description="Element id")
    name: str = Field(..., description="Service name")
    type_ref: Optional[str] = Field(None, description="Declared result type")
    input_data: list[str] = Field(default_factory=list, description="hrefs of consumed input data")
    input_decisions: list[str] = Field(default_factory=list, description="hrefs of consumed upstream decisions")
    output_decisions: list[str] = Field(default_factory=list, description="hrefs of exposed decisions")
    encapsulated_decisions: list[str] = Field(default_factory=list, description="hrefs of internal decisions")


class ItemDefinition(BaseModel):
    """A custom type definition (itemDefinition or itemComponent)."""

    name: str = Field(..., description="Type name")
    type_ref: Optional[str] = Field(None, description="Underlying type when the definition is a simple type")
    is_collection: bool = Field(default=False, description="True when values are lists of the type")
    allowed_values: Optional[str] = Field(None, description="Unary tests constraining values")
    components: list["ItemDefinition"] = Field(default_factory=list, description="Fields of a structured type")


class BusinessKnowledgeModel(BaseModel):
    """A reusable function (businessKnowledgeModel)."""

    id: str = Field(..., description="Element id")
    name: str = Field(..., description="Function name")
    parameters: list[str] = Field(default_factory=list, description="Formal parameter names")


class ImportDeclaration(BaseModel):
    """An import of another model by namespace."""

    namespace: str = Field(..., description="Namespace of the imported model")
    name: str = Field(default="", description="Alias used to qualify imported names")
    import_type: Optional[str] = Field(None, description="importType attribute")


# -----------------------------------------------------------------------------
# Model and collection
# -----------------------------------------------------------------------------


class Model(BaseModel):
    """A compiled decision model."""

    name: str = Field(..., description="Model name (definitions/@name)")
    namespace: str = Field(..., description="Model namespace (definitions/@namespace)")
    source_path: Optional[str] = Field(None, description="File the model was loaded from")
    inputs: list[InputDeclaration] = Field(default_factory=list)
    decisions: list[DecisionDeclaration] = Field(default_factory=list)
    decision_services: list[DecisionServiceDeclaration] = Field(default_factory=list)
    item_definitions: list[ItemDefinition] = Field(default_factory=list)
    business_knowledge_models: list[BusinessKnowledgeModel] = Field(default_factory=list)
    imports: list[ImportDeclaration] = Field(default_factory=list)
    messages: list[DMNMessage] = Field(default_factory=list)

    _compiled: Any = PrivateAttr(default=None)

    @property
    def has_errors(self) -> bool:
        return any(m.severity == Severity.ERROR for m in self.messages)

    def error_texts(self) -> list[str]:
        return [m.text for m in self.messages if m.severity == Severity.ERROR]

    def get_decision(self, name: str) -> Optional[DecisionDeclaration]:
        return next((d for d in self.decisions if d.name == name), None)

    def get_decision_service(self, name: str) -> Optional[DecisionServiceDeclaration]:
        return next((s for s in self.decision_services if s.name == name), None)


class LoadedModelCollection(BaseModel):
    """Models compiled together from one resource set, in load order."""

    models: list[Model] = Field(default_factory=list)
    messages: list[DMNMessage] = Field(default_factory=list, description="Diagnostics not tied to one model")

    def names(self) -> list[str]:
        return [m.name for m in self.models]
