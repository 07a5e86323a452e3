from __future__ import annotations


class DeploymentError(RuntimeError):
    pass


class AdmissionError(DeploymentError):
    def __init__(self, message: str = "a deployment is already in progress") -> None:
        super().__init__(message)


class DeploymentNotFoundError(DeploymentError):
    def __init__(self, deploy_id: str) -> None:
        self.deploy_id = deploy_id
        super().__init__("Deployment not found")


class DeploymentNotRunningError(DeploymentError):
    def __init__(self, message: str = "Deployment is not running") -> None:
        super().__init__(message)


class StdinUnavailableError(DeploymentError):
    def __init__(self, message: str = "Process stdin is not available") -> None:
        super().__init__(message)
