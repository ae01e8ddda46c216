from __future__ import annotations


class PlanningError(RuntimeError):
    pass


class CollaboratorContractError(PlanningError):
    """Graph collaborator reported a negative cost or an out-of-domain vertex."""


class InvalidHeuristicError(PlanningError):
    """Heuristic returned a negative, NaN or inconsistent value."""


class PlannerStateError(PlanningError):
    pass


class PathExtractionError(PlanningError):
    pass
