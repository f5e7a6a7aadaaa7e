import enum
import logging
import re
from dataclasses import dataclass, fields

from django.db import DEFAULT_DB_ALIAS, IntegrityError, transaction
from django.db.models import ProtectedError

from ..exceptions import Conflict, InvalidArgument, NotFound
from ..models import Agent, Annee, Jury, Niveau, NiveauJury, Section

logger = logging.getLogger(__name__)

CODE_PREFIX_DEFAUT = 'JURY'
ROLE_FIELDS = ('president', 'secretaire', 'membre')


class Role(enum.Enum):
    PRESIDENT = 'president'
    SECRETAIRE = 'secretaire'
    MEMBRE = 'membre'
    NONE = 'none'


def role_of(jury, agent_id):
    """Return the slot ``agent_id`` occupies in ``jury`` (first match wins)."""
    for name in ROLE_FIELDS:
        if agent_id is not None and getattr(jury, f'{name}_id') == agent_id:
            return Role(name)
    return Role.NONE


class _Unset:
    def __repr__(self):
        return 'UNSET'

    def __bool__(self):
        return False


UNSET = _Unset()


@dataclass
class JuryData:
    section_id: int
    designation: str
    autorisation: str = Jury.NORMALE
    code: str = None
    president_id: int = None
    secretaire_id: int = None
    membre_id: int = None


@dataclass
class JuryUpdate:
    """Mutable jury fields. Fields left UNSET are not touched; None clears a role slot."""
    section_id: int = UNSET
    designation: str = UNSET
    autorisation: str = UNSET
    code: str = UNSET
    president_id: int = UNSET
    secretaire_id: int = UNSET
    membre_id: int = UNSET

    def changes(self):
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}


class JuryRegistry:
    """Jury definitions and their assignment to (niveau, annee) pairs."""

    def __init__(self, journal, using=DEFAULT_DB_ALIAS):
        self.journal = journal
        self.using = using

    # ---------- lecture ----------

    def _juries(self):
        return Jury.objects.using(self.using).select_related('section', 'president', 'secretaire', 'membre')

    def get(self, jury_id):
        try:
            return self._juries().get(pk=jury_id)
        except Jury.DoesNotExist:
            raise NotFound('Jury introuvable', jury_id=jury_id)

    def get_by_code(self, code):
        try:
            return self._juries().get(code=code)
        except Jury.DoesNotExist:
            raise NotFound('Jury introuvable', code=code)

    def list(self):
        return list(self._juries().order_by('designation'))

    def list_by_section(self, section_id):
        if not Section.objects.using(self.using).filter(pk=section_id).exists():
            raise NotFound('Section introuvable', section_id=section_id)
        return list(self._juries().filter(section_id=section_id).order_by('designation'))

    # ---------- écriture ----------

    def generate_code(self, section_id):
        section = Section.objects.using(self.using).filter(pk=section_id).first()
        prefix = ''
        if section is not None:
            prefix = ''.join(word[0] for word in section.designation.split()).upper()
        prefix = prefix or CODE_PREFIX_DEFAUT

        pattern = re.compile(r'^%s-(\d+)$' % re.escape(prefix))
        highest = 0
        codes = Jury.objects.using(self.using).filter(code__startswith=f'{prefix}-').values_list('code', flat=True)
        for code in codes:
            match = pattern.match(code)
            if match:
                highest = max(highest, int(match.group(1)))
        return f'{prefix}-{highest + 1:03d}'

    def _check_autorisation(self, autorisation):
        if autorisation not in (Jury.NORMALE, Jury.RESTREINTE):
            raise InvalidArgument(
                "L'autorisation doit valoir 'normale' ou 'restreinte'", autorisation=autorisation
            )

    def _check_agents(self, values):
        for name in ROLE_FIELDS:
            agent_id = values.get(f'{name}_id')
            if agent_id and not Agent.objects.using(self.using).filter(pk=agent_id).exists():
                raise NotFound(f'Agent introuvable pour le rôle {name}', agent_id=agent_id)

    def _check_code_free(self, code, exclude_id=None):
        qs = Jury.objects.using(self.using).filter(code=code)
        if exclude_id is not None:
            qs = qs.exclude(pk=exclude_id)
        if qs.exists():
            raise Conflict('Un jury avec ce code existe déjà', code=code)

    def _check_designation_free(self, designation, section_id, exclude_id=None):
        qs = Jury.objects.using(self.using).filter(designation=designation, section_id=section_id)
        if exclude_id is not None:
            qs = qs.exclude(pk=exclude_id)
        if qs.exists():
            raise Conflict('Un jury avec cette désignation existe déjà pour cette section', designation=designation)

    def create(self, data):
        if not data.section_id:
            raise InvalidArgument("L'identifiant de la section est requis")
        if not data.designation or not data.designation.strip():
            raise InvalidArgument('La désignation est requise')
        self._check_autorisation(data.autorisation)
        if not Section.objects.using(self.using).filter(pk=data.section_id).exists():
            raise NotFound('Section introuvable', section_id=data.section_id)

        if data.code:
            self._check_code_free(data.code)
            code = data.code
        else:
            code = self.generate_code(data.section_id)
        self._check_designation_free(data.designation, data.section_id)
        self._check_agents(vars(data))

        jury = Jury(
            section_id=data.section_id,
            designation=data.designation,
            code=code,
            autorisation=data.autorisation,
            president_id=data.president_id,
            secretaire_id=data.secretaire_id,
            membre_id=data.membre_id,
        )
        try:
            with transaction.atomic(using=self.using):
                jury.save(using=self.using)
        except IntegrityError as e:
            # lost a race against a concurrent create
            raise Conflict('Un jury avec ce code ou cette désignation existe déjà', detail=str(e))
        logger.info("Jury %s créé (section %s)", jury.code, jury.section_id)
        return self.get(jury.pk)

    def update(self, jury_id, update):
        jury = self.get(jury_id)
        changes = update.changes()
        if not changes:
            raise InvalidArgument('Aucune donnée fournie pour la mise à jour')

        if 'designation' in changes and (not changes['designation'] or not changes['designation'].strip()):
            raise InvalidArgument('La désignation est requise')
        if 'autorisation' in changes:
            self._check_autorisation(changes['autorisation'])
        if changes.get('section_id') and not Section.objects.using(self.using).filter(
                pk=changes['section_id']).exists():
            raise NotFound('Section introuvable', section_id=changes['section_id'])
        if 'section_id' in changes and not changes['section_id']:
            raise InvalidArgument("L'identifiant de la section est requis")
        if changes.get('code'):
            self._check_code_free(changes['code'], exclude_id=jury.pk)
        elif 'code' in changes:
            raise InvalidArgument('Le code ne peut pas être vide')
        if 'designation' in changes or 'section_id' in changes:
            self._check_designation_free(
                changes.get('designation', jury.designation),
                changes.get('section_id', jury.section_id),
                exclude_id=jury.pk,
            )
        self._check_agents(changes)

        for name, value in changes.items():
            setattr(jury, name, value)
        try:
            with transaction.atomic(using=self.using):
                jury.save(using=self.using, update_fields=[
                    name[:-3] if name.endswith('_id') else name for name in changes
                ])
        except IntegrityError as e:
            raise Conflict('Un jury avec ce code ou cette désignation existe déjà', detail=str(e))
        logger.info("Jury %s mis à jour: %s", jury.code, ', '.join(sorted(changes)))
        return self.get(jury.pk)

    def delete(self, jury_id):
        jury = self.get(jury_id)
        if NiveauJury.objects.using(self.using).filter(jury_id=jury.pk).exists():
            raise Conflict('Impossible de supprimer un jury affecté à des niveaux', jury_id=jury.pk)
        try:
            with transaction.atomic(using=self.using):
                Jury.objects.using(self.using).select_for_update().filter(pk=jury.pk).first()
                if NiveauJury.objects.using(self.using).filter(jury_id=jury.pk).exists():
                    raise Conflict('Impossible de supprimer un jury affecté à des niveaux', jury_id=jury.pk)
                jury.delete(using=self.using)
        except (ProtectedError, IntegrityError) as e:
            raise Conflict('Impossible de supprimer un jury affecté à des niveaux', jury_id=jury.pk, detail=str(e))
        logger.info("Jury %s supprimé", jury.code)

    # ---------- niveau / jury ----------

    def _assignments(self):
        return NiveauJury.objects.using(self.using).select_related('niveau', 'jury', 'jury__section', 'annee')

    def get_assignment(self, niveau_jury_id):
        try:
            return self._assignments().get(pk=niveau_jury_id)
        except NiveauJury.DoesNotExist:
            raise NotFound('Association niveau-jury introuvable', niveau_jury_id=niveau_jury_id)

    def list_assignments(self):
        return list(self._assignments().order_by('id'))

    def niveaux_for_jury(self, jury_id, annee_id=None):
        qs = self._assignments().filter(jury_id=jury_id)
        if annee_id:
            qs = qs.filter(annee_id=annee_id)
        return list(qs.order_by('-annee__debut', 'niveau__intitule'))

    def jurys_for_niveau(self, niveau_id, annee_id=None):
        qs = self._assignments().filter(niveau_id=niveau_id)
        if annee_id:
            qs = qs.filter(annee_id=annee_id)
        return list(qs.order_by('-annee__debut', 'jury__designation'))

    def assign(self, niveau_id, jury_id, annee_id):
        if not Niveau.objects.using(self.using).filter(pk=niveau_id).exists():
            raise NotFound('Niveau introuvable', niveau_id=niveau_id)
        jury = self.get(jury_id)
        if not Annee.objects.using(self.using).filter(pk=annee_id).exists():
            raise NotFound('Année académique introuvable', annee_id=annee_id)
        if NiveauJury.objects.using(self.using).filter(
                niveau_id=niveau_id, jury_id=jury.pk, annee_id=annee_id).exists():
            raise Conflict('Ce jury est déjà affecté à ce niveau pour cette année académique')

        try:
            with transaction.atomic(using=self.using):
                affectation = NiveauJury.objects.using(self.using).create(
                    niveau_id=niveau_id, jury_id=jury.pk, annee_id=annee_id
                )
        except IntegrityError as e:
            raise Conflict('Ce jury est déjà affecté à ce niveau pour cette année académique', detail=str(e))
        logger.info("Jury %s affecté au niveau %s pour l'année %s", jury.code, niveau_id, annee_id)
        return self.get_assignment(affectation.pk)

    def remove(self, niveau_jury_id):
        affectation = self.get_assignment(niveau_jury_id)
        message = 'Impossible de retirer ce jury du niveau: des cotes ont déjà été enregistrées'
        if self.journal.records_for_assignment(affectation.pk).exists():
            raise Conflict(message, niveau_jury_id=affectation.pk)
        with transaction.atomic(using=self.using):
            NiveauJury.objects.using(self.using).select_for_update().filter(pk=affectation.pk).first()
            if self.journal.records_for_assignment(affectation.pk).exists():
                raise Conflict(message, niveau_jury_id=affectation.pk)
            NiveauJury.objects.using(self.using).filter(pk=affectation.pk).delete()
        logger.info("Association niveau-jury %s retirée", affectation.pk)

    def membership(self, niveau_id, annee_id, agent_id):
        """List (jury, role) for each jury assigned to (niveau, annee) where the agent sits."""
        juries = self._juries().filter(affectations__niveau_id=niveau_id, affectations__annee_id=annee_id)
        result = []
        for jury in juries.distinct().order_by('id'):
            role = role_of(jury, agent_id)
            if role is not Role.NONE:
                result.append((jury, role))
        return result
