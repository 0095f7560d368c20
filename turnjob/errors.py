from __future__ import annotations


class InputContractError(ValueError):
    """A caller supplied input that the engine cannot work with."""

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class UnknownCollaboratorError(InputContractError):
    status_code = 404

    def __init__(self, collaborator_id: int, field: str = "collaboratorId"):
        super().__init__(field, f"Collaborator {collaborator_id} not found")
        self.collaborator_id = collaborator_id


class UnknownTenantError(InputContractError):
    status_code = 404

    def __init__(self, tenant_id: int):
        super().__init__("tenantId", f"Tenant {tenant_id} not found")
        self.tenant_id = tenant_id


class UnknownNucleoError(InputContractError):
    def __init__(self, nucleo_ids: list[int]):
        joined = ", ".join(str(nucleo_id) for nucleo_id in nucleo_ids)
        super().__init__("nucleoIds", f"Nucleo ids not found for this tenant: {joined}")
        self.nucleo_ids = nucleo_ids


class InvalidTimeWindowError(InputContractError):
    pass


class SchedulingDisabledError(InputContractError):
    def __init__(self):
        super().__init__("mode", "Automatic scheduling is disabled for this tenant")
