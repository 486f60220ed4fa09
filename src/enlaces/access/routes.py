"""
Application routes and the capability each one requires.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from .permissions import Capability


class Route(str, Enum):
    LOGIN = "/login"
    DASHBOARD = "/dashboard"
    NEW_CALL = "/new-call"
    CALLS = "/calls"
    REPORTS = "/reports"
    SETTINGS = "/settings"
    USERS = "/users"


# None means any authenticated session may open the route
ROUTE_REQUIREMENTS: Dict[Route, Optional[Capability]] = {
    Route.DASHBOARD: Capability.VIEW_DASHBOARD,
    Route.NEW_CALL: Capability.FILL_FORMS,
    Route.CALLS: Capability.VIEW_CALLS,
    Route.REPORTS: Capability.VIEW_REPORTS,
    Route.SETTINGS: Capability.MANAGE_SETTINGS,
    Route.USERS: Capability.CREATE_USERS,
}

# Checked in order when choosing where to land after sign in
LANDING_PRIORITY: Tuple[Route, ...] = (Route.DASHBOARD, Route.NEW_CALL, Route.CALLS)


@dataclass(frozen=True)
class MenuItem:
    route: Route
    text: str
    description: str


MENU: Tuple[MenuItem, ...] = (
    MenuItem(Route.DASHBOARD, "Dashboard", "Panel principal con métricas"),
    MenuItem(Route.NEW_CALL, "Nueva Llamada", "Registrar nueva llamada"),
    MenuItem(Route.CALLS, "Ver Llamadas", "Lista de todas las llamadas"),
    MenuItem(Route.REPORTS, "Reportes", "Generar y descargar reportes"),
    MenuItem(Route.USERS, "Usuarios", "Gestión de usuarios del sistema"),
    MenuItem(Route.SETTINGS, "Configuración", "Configuración del sistema"),
)
