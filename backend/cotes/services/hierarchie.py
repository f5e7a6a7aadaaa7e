from django.db import DEFAULT_DB_ALIAS

from ..exceptions import NotFound
from ..models import Matiere, Niveau, Promotion, Unite


class HierarchyResolver:
    """Resolve the niveau owning a matiere: matiere -> unite -> promotion -> niveau."""

    def __init__(self, using=DEFAULT_DB_ALIAS):
        self.using = using

    def resolve_level(self, matiere_id):
        matiere = Matiere.objects.using(self.using).filter(pk=matiere_id).values('unite_id').first()
        if matiere is None:
            raise NotFound('Matière introuvable', matiere_id=matiere_id)

        unite = Unite.objects.using(self.using).filter(pk=matiere['unite_id']).values('promotion_id').first()
        if unite is None:
            raise NotFound('Unité introuvable', unite_id=matiere['unite_id'])

        promotion = Promotion.objects.using(self.using).filter(pk=unite['promotion_id']).values('niveau_id').first()
        if promotion is None:
            raise NotFound('Promotion introuvable', promotion_id=unite['promotion_id'])

        if not Niveau.objects.using(self.using).filter(pk=promotion['niveau_id']).exists():
            raise NotFound('Niveau introuvable', niveau_id=promotion['niveau_id'])
        return promotion['niveau_id']
