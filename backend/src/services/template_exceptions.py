"""Medical record template engine exceptions."""

from typing import Optional


class TemplateEngineError(Exception):
    """Base template engine error."""
    pass


class TemplateNotFoundError(TemplateEngineError):
    """Template id does not resolve within the tenant."""

    def __init__(self, template_id: Optional[int], tenant_id: str):
        self.template_id = template_id
        self.tenant_id = tenant_id
        super().__init__(f"Template {template_id} not found for tenant {tenant_id}")


class TemplateInactiveError(TemplateEngineError):
    """Template is soft-deleted and cannot be applied or modified."""

    def __init__(self, template_id: int):
        self.template_id = template_id
        super().__init__(f"Template {template_id} is not active")


class TemplatePersistenceError(TemplateEngineError):
    """Storage failure. The original database error is kept as `cause`."""

    def __init__(self, message: str, cause: Exception):
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class TemplateTransactionConflictError(TemplateEngineError):
    """Concurrent default promotion collided in the same bucket; safe to retry."""
    pass
