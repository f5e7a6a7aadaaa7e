import logging
import numbers
from decimal import Decimal

from django.db import DEFAULT_DB_ALIAS, transaction

from ..exceptions import InvalidArgument, NotFound, PermissionDenied
from ..models import COMPOSANTES, COTE_MAX, COTE_MIN, FicheCotation

logger = logging.getLogger(__name__)


def _format_cote(value):
    if value is None:
        return '0'
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def description_par_defaut(cote, ancienne, nouvelle):
    return f"Modification de la cote {cote} de {_format_cote(ancienne)} à {_format_cote(nouvelle)}"


class GradeLedger:
    """Writes grade components, each write authorized and journaled atomically."""

    def __init__(self, engine, journal, using=DEFAULT_DB_ALIAS):
        self.engine = engine
        self.journal = journal
        self.using = using

    def set_component(self, fiche_id, agent_id, cote, valeur, description=None):
        """Set ``cote`` of the sheet to ``valeur`` on behalf of ``agent_id``.

        Returns ``(fiche, insertion)``. The sheet write and the journal entry
        are committed together or not at all.
        """
        if cote not in COMPOSANTES:
            raise InvalidArgument('Type de cote invalide', cote=cote)
        if isinstance(valeur, Decimal):
            valeur = float(valeur)
        if isinstance(valeur, bool) or not isinstance(valeur, numbers.Real):
            raise InvalidArgument('La cote doit être un nombre', valeur=str(valeur))
        if not COTE_MIN <= valeur <= COTE_MAX:
            raise InvalidArgument(
                f'La cote doit être comprise entre {COTE_MIN} et {COTE_MAX}', valeur=valeur
            )

        with transaction.atomic(using=self.using):
            # the sheet stays locked from the permission check to the journal entry
            try:
                fiche = FicheCotation.objects.using(self.using).select_for_update().get(pk=fiche_id)
            except FicheCotation.DoesNotExist:
                raise NotFound('Fiche de cotation introuvable', fiche_id=fiche_id)
            self._check_permission(agent_id, fiche_id, cote)

            ancienne = getattr(fiche, cote)
            setattr(fiche, cote, valeur)
            fiche.save(using=self.using, update_fields=[cote])
            insertion = self.journal.append(
                fiche,
                agent_id,
                cote,
                ancienne,
                description or description_par_defaut(cote, ancienne, valeur),
            )

        logger.info("Cote %s de la fiche %s modifiée par l'agent %s: %s -> %s",
                    cote, fiche_id, agent_id, ancienne, valeur)
        return fiche, insertion

    def _check_permission(self, agent_id, fiche_id, cote):
        try:
            autorisation = self.engine.authorize(agent_id, fiche_id)
        except PermissionDenied:
            logger.warning("Modification refusée: agent %s, fiche %s, cote %s", agent_id, fiche_id, cote)
            raise
        if cote == 'rattrapage' and autorisation.jury_restreint:
            logger.warning("Rattrapage refusé (jury restreint %s): agent %s, fiche %s",
                           autorisation.jury_id, agent_id, fiche_id)
            raise PermissionDenied("Ce jury n'est pas autorisé à modifier les rattrapages",
                                   jury_id=autorisation.jury_id)
        if cote not in autorisation.permitted:
            raise PermissionDenied("L'agent n'est pas autorisé à modifier cette cote", cote=cote)
