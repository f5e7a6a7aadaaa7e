from dataclasses import dataclass

from django.db import DEFAULT_DB_ALIAS

from ..exceptions import NotFound, PermissionDenied
from ..models import Agent, FicheCotation

COMPOSANTES_NORMALES = frozenset({'tp', 'td', 'examen'})
COMPOSANTES_COMPLETES = COMPOSANTES_NORMALES | {'rattrapage'}


@dataclass(frozen=True)
class Autorisation:
    agent_id: int
    fiche_id: int
    jury_id: int
    jury_designation: str
    jury_restreint: bool
    role: object
    permitted: frozenset

    def to_dict(self):
        return {
            'agent_id': self.agent_id,
            'fiche_id': self.fiche_id,
            'jury_id': self.jury_id,
            'jury_designation': self.jury_designation,
            'role': self.role.value,
            'autorisations': {c: c in self.permitted for c in ('tp', 'td', 'examen', 'rattrapage')},
        }


def permitted_components(jury):
    if jury.est_restreint:
        return COMPOSANTES_NORMALES
    return COMPOSANTES_COMPLETES


class AuthorizationEngine:
    """Decide whether an agent may edit a grade sheet, and which components.

    Every call goes back to the database: jury membership can change between
    two requests, so nothing is cached.
    """

    def __init__(self, registry, resolver, using=DEFAULT_DB_ALIAS):
        self.registry = registry
        self.resolver = resolver
        self.using = using

    def authorize(self, agent_id, fiche_id):
        fiche = FicheCotation.objects.using(self.using).filter(pk=fiche_id).values('matiere_id', 'annee_id').first()
        if fiche is None:
            raise NotFound('Fiche de cotation introuvable', fiche_id=fiche_id)
        if not Agent.objects.using(self.using).filter(pk=agent_id).exists():
            raise NotFound('Agent introuvable', agent_id=agent_id)

        niveau_id = self.resolver.resolve_level(fiche['matiere_id'])
        memberships = self.registry.membership(niveau_id, fiche['annee_id'], agent_id)
        if not memberships:
            raise PermissionDenied(
                "L'agent n'est membre d'aucun jury autorisé à modifier cette cote",
                agent_id=agent_id, fiche_id=fiche_id,
            )

        # an unrestricted jury wins over a restricted one
        jury, role = max(memberships, key=lambda m: len(permitted_components(m[0])))
        return Autorisation(
            agent_id=agent_id,
            fiche_id=fiche_id,
            jury_id=jury.pk,
            jury_designation=jury.designation,
            jury_restreint=jury.est_restreint,
            role=role,
            permitted=permitted_components(jury),
        )
