"""
Dependency resolution for services to determine startup order.
"""
from typing import List, Set
from ..MODELS.orchestration_config import OrchestrationConfig
from ..errors import CircularDependencyError, UnknownDependencyError

class DependencyResolver:
    """
    Resolves the startup order of services based on their dependencies.
    """
    def resolve_order(self, config: OrchestrationConfig) -> List[str]:
        """
        Orders services so that every service comes after the services it
        depends on.

        :param config: The orchestration configuration.
        :return: Service names in the order they should be started.
        :raises UnknownDependencyError: If a dependency names a missing service.
        :raises CircularDependencyError: If the dependencies form a cycle.
        """
        graph = {name: list(svc.depends_on) for name, svc in config.services.items()}
        for name, deps in graph.items():
            missing = next((dep for dep in deps if dep not in graph), None)
            if missing is not None:
                raise UnknownDependencyError(name, missing)

        order: List[str] = []
        done: Set[str] = set()
        path: List[str] = []

        def place(name: str):
            if name in done:
                return
            if name in path:
                raise CircularDependencyError(path[path.index(name):] + [name])
            path.append(name)
            for dep in graph[name]:
                place(dep)
            path.pop()
            done.add(name)
            order.append(name)

        for name in graph:
            place(name)
        return order
