from convoprobe.models.base import Base
from convoprobe.models.definitions import ConnectorRecord, PersonaRecord, ScenarioRecord
from convoprobe.models.run import RunRecord

__all__ = [
    "Base",
    "ScenarioRecord",
    "PersonaRecord",
    "ConnectorRecord",
    "RunRecord",
]
