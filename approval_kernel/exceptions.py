"""
Typed Exception Hierarchy for the Approval Workflow Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval callers (UI handlers, API endpoints, retrying stores) must react
to errors precisely: a stale client refreshes on ``StepNotCurrentError``,
a retried write treats ``DuplicateVoteError`` as benign, a configuration
tool fixes the template on ``InvalidTemplateError``.  Parsing message
strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.approve_step(instance_id, step_id, approver_id)
    except StepNotCurrentError as e:
        refresh(e.instance_id, e.current_step_id)
    except DuplicateVoteError:
        pass  # retried write, the first call already counted

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalWorkflowError (base)
    |
    +-- TemplateError
    |   +-- InvalidTemplateError
    |   +-- TemplateNotFoundError
    |   +-- TemplateStepNotFoundError
    |   +-- InvalidStepOrderError
    |
    +-- InstanceError
    |   +-- InstanceNotFoundError
    |   +-- TerminalInstanceError
    |   +-- StepNotCurrentError
    |   +-- StepNotFoundError
    |   +-- InvalidStatusTransitionError
    |
    +-- VoteError
    |   +-- DuplicateVoteError
    |   +-- UnknownApproverError
    |   +-- MissingCommentsError
    |
    +-- ConditionError
    |   +-- InvalidEntitySnapshotError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|--------------------------------------------
Template     | INVALID_TEMPLATE         | No steps / inactive at instantiation
             | TEMPLATE_NOT_FOUND       | Template id unknown to the store
             | TEMPLATE_STEP_NOT_FOUND  | Step id not part of the template
             | INVALID_STEP_ORDER       | Step orders are not a dense 0..n-1 range
-------------|--------------------------|--------------------------------------------
Instance     | INSTANCE_NOT_FOUND       | Instance id unknown to the store
             | TERMINAL_INSTANCE        | Mutation of an approved/rejected instance
             | STEP_NOT_CURRENT         | Vote on a step that is not active
             | STEP_NOT_FOUND           | Step id not part of the instance
             | INVALID_STATUS_TRANSITION| Status change outside the lifecycle table
-------------|--------------------------|--------------------------------------------
Vote         | DUPLICATE_VOTE           | Same approver voting twice on a step
             | UNKNOWN_APPROVER         | Approver not on the parallel roster
             | MISSING_COMMENTS         | Step requires comments, none given
-------------|--------------------------|--------------------------------------------
Condition    | INVALID_ENTITY_SNAPSHOT  | Entity field holds a non-scalar value
-------------|--------------------------|--------------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT | Instance row changed since it was read

===============================================================================
PROPAGATION
===============================================================================

All errors are raised synchronously from the operation that detects
them.  Nothing in the engine swallows or downgrades them.  Event
delivery failures are NOT part of this hierarchy: the event bus logs and
drops them so they never roll back a state transition.
"""


class ApprovalWorkflowError(Exception):
    """
    Base exception for all approval workflow errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "APPROVAL_WORKFLOW_ERROR"


# Template-related exceptions


class TemplateError(ApprovalWorkflowError):
    """Base exception for template configuration errors."""

    code: str = "TEMPLATE_ERROR"


class InvalidTemplateError(TemplateError):
    """Template cannot be instantiated (no steps, or inactive)."""

    code: str = "INVALID_TEMPLATE"

    def __init__(self, template_id: str, reason: str):
        self.template_id = template_id
        self.reason = reason
        super().__init__(f"Invalid template {template_id}: {reason}")


class TemplateNotFoundError(TemplateError):
    """Template with given ID was not found."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}")


class TemplateStepNotFoundError(TemplateError):
    """Step ID is not part of the template."""

    code: str = "TEMPLATE_STEP_NOT_FOUND"

    def __init__(self, template_id: str, step_id: str):
        self.template_id = template_id
        self.step_id = step_id
        super().__init__(f"Step {step_id} not found in template {template_id}")


class InvalidStepOrderError(TemplateError):
    """Step order values do not form a dense 0..n-1 range."""

    code: str = "INVALID_STEP_ORDER"

    def __init__(self, template_id: str, orders: list[int]):
        self.template_id = template_id
        self.orders = orders
        super().__init__(
            f"Template {template_id} has non-contiguous step orders: {orders}"
        )


# Instance-related exceptions


class InstanceError(ApprovalWorkflowError):
    """Base exception for workflow instance errors."""

    code: str = "INSTANCE_ERROR"


class InstanceNotFoundError(InstanceError):
    """Workflow instance with given ID was not found."""

    code: str = "INSTANCE_NOT_FOUND"

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Workflow instance not found: {instance_id}")


class TerminalInstanceError(InstanceError):
    """
    Mutation attempted on an approved or rejected instance.

    Always surfaced to the caller, never retried automatically.
    """

    code: str = "TERMINAL_INSTANCE"

    def __init__(self, instance_id: str, status: str):
        self.instance_id = instance_id
        self.status = status
        super().__init__(
            f"Workflow instance {instance_id} is already {status}"
        )


class StepNotCurrentError(InstanceError):
    """
    Vote submitted for a step that is not the active one.

    Usually stale client state; ``current_step_id`` lets the caller
    refresh and re-present the correct step.
    """

    code: str = "STEP_NOT_CURRENT"

    def __init__(
        self,
        instance_id: str,
        step_id: str,
        current_step_id: str | None,
    ):
        self.instance_id = instance_id
        self.step_id = step_id
        self.current_step_id = current_step_id
        super().__init__(
            f"Step {step_id} is not the current step of instance "
            f"{instance_id} (current: {current_step_id})"
        )


class StepNotFoundError(InstanceError):
    """Step ID is not part of the workflow instance."""

    code: str = "STEP_NOT_FOUND"

    def __init__(self, instance_id: str, step_id: str):
        self.instance_id = instance_id
        self.step_id = step_id
        super().__init__(f"Step {step_id} not found in instance {instance_id}")


class InvalidStatusTransitionError(InstanceError):
    """Status change not allowed by the lifecycle tables.

    Signals a corrupted instance; normal operation never reaches it.
    """

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_status: str,
        to_status: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid {entity_type} transition for {entity_id}: "
            f"{from_status} -> {to_status}"
        )


# Vote-related exceptions


class VoteError(ApprovalWorkflowError):
    """Base exception for rejected votes."""

    code: str = "VOTE_ERROR"


class DuplicateVoteError(VoteError):
    """
    Same approver voting twice on the same step.

    A no-op from the system's perspective.  Retried writes land here
    instead of double-counting.
    """

    code: str = "DUPLICATE_VOTE"

    def __init__(self, step_id: str, approver_id: str, existing_status: str):
        self.step_id = step_id
        self.approver_id = approver_id
        self.existing_status = existing_status
        super().__init__(
            f"Approver {approver_id} already voted on step {step_id} "
            f"({existing_status})"
        )


class UnknownApproverError(VoteError):
    """Approver is not a member of the parallel step's roster."""

    code: str = "UNKNOWN_APPROVER"

    def __init__(self, step_id: str, approver_id: str):
        self.step_id = step_id
        self.approver_id = approver_id
        super().__init__(
            f"Approver {approver_id} is not on the roster of step {step_id}"
        )


class MissingCommentsError(VoteError):
    """Step requires comments and none were supplied."""

    code: str = "MISSING_COMMENTS"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Step {step_id} requires comments")


# Condition-related exceptions


class ConditionError(ApprovalWorkflowError):
    """Base exception for condition evaluation input errors."""

    code: str = "CONDITION_ERROR"


class InvalidEntitySnapshotError(ConditionError):
    """Entity snapshot field holds a value that is not a flat scalar."""

    code: str = "INVALID_ENTITY_SNAPSHOT"

    def __init__(self, field: str, value_type: str):
        self.field = field
        self.value_type = value_type
        super().__init__(
            f"Entity field {field!r} has unsupported type {value_type}; "
            "only numbers, strings, booleans and None are allowed"
        )


# Concurrency-related exceptions


class ConcurrencyError(ApprovalWorkflowError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
