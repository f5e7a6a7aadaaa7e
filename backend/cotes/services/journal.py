from django.db import DEFAULT_DB_ALIAS
from django.db.models import Count, Q

from ..exceptions import NotFound
from ..models import COMPOSANTES, Inscription, Insertion, Jury, NiveauJury


def _par_composante():
    counts = {'total_modifications': Count('id')}
    for cote in COMPOSANTES:
        counts[f'{cote}_modifications'] = Count('id', filter=Q(cote=cote))
    return counts


class AuditLog:
    """Append-only journal of grade modifications (table ``insertion``).

    Only ``append`` writes; it is called by the grade ledger inside the same
    transaction as the grade write. Everything else is a read.
    """

    def __init__(self, using=DEFAULT_DB_ALIAS):
        self.using = using

    def _insertions(self):
        return Insertion.objects.using(self.using).select_related(
            'agent', 'fiche', 'fiche__etudiant', 'fiche__matiere', 'fiche__annee'
        )

    def append(self, fiche, agent_id, cote, last_val, description):
        return Insertion.objects.using(self.using).create(
            fiche=fiche,
            agent_id=agent_id,
            cote=cote,
            last_val=last_val,
            description=description,
        )

    def all(self):
        return self._insertions()

    def get(self, insertion_id):
        try:
            return self._insertions().get(pk=insertion_id)
        except Insertion.DoesNotExist:
            raise NotFound('Insertion introuvable', insertion_id=insertion_id)

    def records_for_fiche(self, fiche_id):
        return self._insertions().filter(fiche_id=fiche_id)

    def records_for_agent(self, agent_id):
        return self._insertions().filter(agent_id=agent_id)

    def records_for_annee(self, annee_id):
        return self._insertions().filter(fiche__annee_id=annee_id)

    def records_for_assignment(self, niveau_jury_id):
        """Insertions made by the jury's members on sheets of students enrolled
        in that niveau for that annee."""
        try:
            affectation = NiveauJury.objects.using(self.using).select_related('jury').get(pk=niveau_jury_id)
        except NiveauJury.DoesNotExist:
            raise NotFound('Association niveau-jury introuvable', niveau_jury_id=niveau_jury_id)

        agent_ids = affectation.jury.agent_ids()
        if not agent_ids:
            return self._insertions().none()
        etudiants = Inscription.objects.using(self.using).filter(
            promotion__niveau_id=affectation.niveau_id, annee_id=affectation.annee_id
        ).values('etudiant_id')
        return self._insertions().filter(
            agent_id__in=agent_ids,
            fiche__annee_id=affectation.annee_id,
            fiche__etudiant__in=etudiants,
        )

    def latest_for_etudiant(self, etudiant_id, limit=10):
        return list(self._insertions().filter(fiche__etudiant_id=etudiant_id)[:limit])

    def latest_for_matiere(self, matiere_id, annee_id, limit=20):
        return list(self._insertions().filter(fiche__matiere_id=matiere_id, fiche__annee_id=annee_id)[:limit])

    # ---------- statistiques ----------

    def statistics_by_agent(self, annee_id):
        rows = (
            Insertion.objects.using(self.using)
            .filter(fiche__annee_id=annee_id)
            .values('agent_id', 'agent__nom', 'agent__post_nom', 'agent__prenom')
            .annotate(**_par_composante())
            .order_by('-total_modifications', 'agent_id')
        )
        return [
            {
                'agent_id': row.pop('agent_id'),
                'nom': row.pop('agent__nom'),
                'post_nom': row.pop('agent__post_nom'),
                'prenom': row.pop('agent__prenom'),
                **row,
            }
            for row in rows
        ]

    def statistics_by_jury(self, annee_id):
        juries = (
            Jury.objects.using(self.using)
            .select_related('section')
            .filter(affectations__annee_id=annee_id)
            .distinct()
            .order_by('id')
        )
        stats = []
        for jury in juries:
            insertions = Insertion.objects.using(self.using).filter(
                agent_id__in=jury.agent_ids(), fiche__annee_id=annee_id
            ).order_by()
            counts = insertions.aggregate(
                agents_count=Count('agent', distinct=True),
                etudiants_count=Count('fiche__etudiant', distinct=True),
                **_par_composante(),
            )
            stats.append({
                'jury_id': jury.pk,
                'jury_designation': jury.designation,
                'jury_code': jury.code,
                'section_designation': jury.section.designation,
                **counts,
            })
        stats.sort(key=lambda s: s['total_modifications'], reverse=True)
        return stats
