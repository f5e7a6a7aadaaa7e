from collections import namedtuple

from django.db import DEFAULT_DB_ALIAS

from .autorisation import Autorisation, AuthorizationEngine
from .cotation import GradeLedger
from .hierarchie import HierarchyResolver
from .journal import AuditLog
from .jurys import JuryData, JuryRegistry, JuryUpdate, Role, UNSET

Services = namedtuple('Services', 'resolver journal jurys autorisation cotation')


def build_services(using=DEFAULT_DB_ALIAS):
    """Wire the grading components on the given database alias."""
    resolver = HierarchyResolver(using=using)
    journal = AuditLog(using=using)
    jurys = JuryRegistry(journal, using=using)
    autorisation = AuthorizationEngine(jurys, resolver, using=using)
    cotation = GradeLedger(autorisation, journal, using=using)
    return Services(resolver, journal, jurys, autorisation, cotation)


__all__ = [
    'AuditLog', 'Autorisation', 'AuthorizationEngine', 'GradeLedger', 'HierarchyResolver',
    'JuryData', 'JuryRegistry', 'JuryUpdate', 'Role', 'Services', 'UNSET', 'build_services',
]
