"""Form engine: schema derivation, visibility, conditions, sessions and navigation."""

from stepform.forms.conditions import ConditionSyntaxError, evaluate
from stepform.forms.loader import FormConfigError, load_form_config, load_form_configs
from stepform.forms.models import FieldGroup, FormConfig, PersistedSession, Step
from stepform.forms.orchestrator import FormContext, FormOrchestrator
from stepform.forms.schema import FieldSchemaBuilder, StepSchemaBuilder, StepValidationContract
from stepform.forms.session import FormSessionStore
from stepform.forms.visibility import VisibilityResolver

__all__ = [
    "ConditionSyntaxError",
    "FieldGroup",
    "FieldSchemaBuilder",
    "FormConfig",
    "FormConfigError",
    "FormContext",
    "FormOrchestrator",
    "FormSessionStore",
    "PersistedSession",
    "Step",
    "StepSchemaBuilder",
    "StepValidationContract",
    "VisibilityResolver",
    "evaluate",
    "load_form_config",
    "load_form_configs",
]
