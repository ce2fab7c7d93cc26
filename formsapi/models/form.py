import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from formsapi.conditions import Condition
from formsapi.errors import ConfigurationError
from formsapi.fields import FieldType, normalize_field_type, stringify


def _known_type(v):
    try:
        return normalize_field_type(v)
    except ConfigurationError as e:
        raise ValueError(e.message) from e


def _plain_options(v):
    # older clients send options as a list of strings
    if v is None:
        return []
    return [{"label": o, "value": o} if isinstance(o, (str, int, float)) else o for o in v]


def _scalar_to_str(v):
    if isinstance(v, (bool, int, float)):
        return stringify(v)
    return v


FieldTypeIn = Annotated[FieldType, BeforeValidator(_known_type)]
Text = Annotated[str, BeforeValidator(_scalar_to_str)]


class FieldOption(BaseModel):
    label: Text
    value: Text


OptionList = Annotated[List[FieldOption], BeforeValidator(_plain_options)]


class ConditionalLogic(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    depends_on: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("dependsOn", "depends_on"),
        serialization_alias="dependsOn",
    )
    condition: Condition = Condition.EQUALS
    value: Optional[Text] = None


class ValidationRules(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    integer: bool = False
    pattern: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def pattern_compiles(cls, v):
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid pattern: {e}") from e
        return v


class FormField(BaseModel):
    id: Optional[str] = None
    form_id: Optional[int] = None
    type: FieldTypeIn
    label: str
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    required: bool = False
    options: OptionList = []
    validation_rules: Optional[ValidationRules] = None
    conditional_logic: Optional[ConditionalLogic] = None
    position: int = 0
    active: bool = True


class FieldUpdateIn(BaseModel):
    type: Optional[FieldTypeIn] = None
    label: Optional[str] = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    required: Optional[bool] = None
    options: Optional[OptionList] = None
    validation_rules: Optional[ValidationRules] = None
    conditional_logic: Optional[ConditionalLogic] = None
    position: Optional[int] = None
    active: Optional[bool] = None


class FieldsIn(BaseModel):
    fields: List[FormField]


class FormIn(BaseModel):
    title: str
    description: Optional[str] = None
    active: bool = True
    require_login: bool = False
    limit_submissions: bool = False
    max_submissions_per_user: Optional[int] = Field(default=None, ge=1)
    confirmation_message: Optional[str] = None
    email_notifications: bool = False


class FormUpdateIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None
    require_login: Optional[bool] = None
    limit_submissions: Optional[bool] = None
    max_submissions_per_user: Optional[int] = Field(default=None, ge=1)
    confirmation_message: Optional[str] = None
    email_notifications: Optional[bool] = None


class Form(FormIn):
    id: int
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PublicForm(BaseModel):
    form: Form
    fields: List[FormField]


class ResponseIn(BaseModel):
    response_data: Dict[str, Any] = {}


class FormResponse(BaseModel):
    id: int
    form_id: int
    user_id: Optional[int] = None
    completed_at: datetime


class FormResponseValue(BaseModel):
    field_id: str
    value: Optional[str] = None
    numeric_value: Optional[float] = None
    boolean_value: Optional[bool] = None


class FormResponseDetail(FormResponse):
    data: Dict[str, Any]
    metadata: Optional[Dict[str, Any]] = None
    values: List[FormResponseValue] = []


class FieldVisibilityOut(BaseModel):
    visible: bool
    required: bool


class VisibilityOut(BaseModel):
    visibility: Dict[str, FieldVisibilityOut]


class SubmittedResponse(BaseModel):
    response: FormResponse
