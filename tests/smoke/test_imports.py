def test_import_runtime_package():
    from agentmesh.runtime import Orchestrator, OracleWorker, QueueOracleClient  # noqa: F401


def test_import_runtime_modules():
    from agentmesh.runtime.commands import CommandInterpreter, parse_directives  # noqa: F401
    from agentmesh.runtime.gateway import OracleGateway  # noqa: F401
    from agentmesh.runtime.telemetry import LoggingTelemetryClient, NoOpTelemetryClient  # noqa: F401
