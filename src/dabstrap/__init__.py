"""dabstrap - Idempotent, resumable provisioning for the ODR-mmbTools DAB stack."""

from . import build as build
from . import specs as specs
from .context import RunContext as RunContext
from .context import User as User
from .errors import CommandFailed as CommandFailed
from .errors import ContractViolation as ContractViolation
from .errors import Interrupted as Interrupted
from .errors import MissingTemplate as MissingTemplate
from .errors import PermissionDenied as PermissionDenied
from .errors import ProvisionError as ProvisionError
from .errors import UserAborted as UserAborted
from .executor import CommandResult as CommandResult
from .executor import Executor as Executor
from .patcher import ConfigPatcher as ConfigPatcher
from .patcher import PatchRule as PatchRule
from .plans import Plan as Plan
from .report import RunReport as RunReport
from .report import RunState as RunState
from .report import StepState as StepState
from .spec import Specification as Specification
from .spec import spec as spec
from .specop import Ensure as Ensure
from .specop import Present as Present
from .specop import Step as Step
from .stages import Stage as Stage
from .workspace import Workspace as Workspace
