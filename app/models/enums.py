from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    user = "user"
    owner = "owner"
    admin = "admin"


class ReportReason(str, Enum):
    spam = "spam"
    ofensivo = "ofensivo"
    falso = "falso"
    inapropiado = "inapropiado"
    otro = "otro"


class ReportStatus(str, Enum):
    pendiente = "pendiente"
    aprobado = "aprobado"
    rechazado = "rechazado"


class AuditAction(str, Enum):
    ban = "ban"
    unban = "unban"


class PriceRange(str, Enum):
    low = "$"
    medium = "$$"
    high = "$$$"
    premium = "$$$$"
