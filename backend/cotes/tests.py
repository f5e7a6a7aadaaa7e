import json
from unittest import mock

from django.contrib.auth.models import User
from django.db import DatabaseError, connection
from django.test import TestCase, override_settings

from .exceptions import Conflict, InvalidArgument, NotFound, PermissionDenied
from .models import (
    Agent, Annee, Etudiant, FicheCotation, Inscription, Insertion, Jury, Matiere, Niveau, NiveauJury,
    Promotion, Section, Unite,
)
from .services import JuryData, JuryUpdate, Role, build_services
from .services.jurys import role_of


class CotesTestMixin:
    """Section SI with a restricted jury assigned to L1 for 2023-2024.

    ``self.secretaire`` sits on the jury, ``self.externe`` on none.
    """

    def setUp(self):
        self.services = build_services()
        self.section = Section.objects.create(designation='Sciences Informatiques')
        self.annee = Annee.objects.create(debut=2023, fin=2024)
        self.niveau = Niveau.objects.create(intitule='L1', systeme='LMD')
        self.promotion = Promotion.objects.create(section=self.section, niveau=self.niveau, orientation='Génie Logiciel')
        self.unite = Unite.objects.create(promotion=self.promotion, code='UE1', designation='Programmation')
        self.matiere = Matiere.objects.create(unite=self.unite, code='ALGO', designation='Algorithmique', credit=5)
        self.etudiant = Etudiant.objects.create(nom='Kabila', post_nom='Mbuyi', prenom='Alice', matricule='SI001')
        Inscription.objects.create(etudiant=self.etudiant, promotion=self.promotion, annee=self.annee)
        self.fiche = FicheCotation.objects.create(
            etudiant=self.etudiant, matiere=self.matiere, annee=self.annee, tp=5, td=4, examen=3
        )

        self.president = Agent.objects.create(nom='Lumumba', post_nom='Okito', prenom='Paul')
        self.user = User.objects.create_user('secretaire', password='x')
        self.secretaire = Agent.objects.create(nom='Tshala', post_nom='Muana', prenom='Anne', user=self.user)
        self.externe_user = User.objects.create_user('externe', password='x')
        self.externe = Agent.objects.create(nom='Mutombo', prenom='Ben', user=self.externe_user)

        self.jury = self.services.jurys.create(JuryData(
            section_id=self.section.id,
            designation='Jury L1',
            autorisation=Jury.RESTREINTE,
            president_id=self.president.id,
            secretaire_id=self.secretaire.id,
        ))
        self.affectation = self.services.jurys.assign(self.niveau.id, self.jury.id, self.annee.id)


class JuryRegistryTestCase(CotesTestMixin, TestCase):
    def test_generated_code_uses_section_initials(self):
        self.assertEqual(self.jury.code, 'SI-001')

    def test_first_code_of_empty_section(self):
        section = Section.objects.create(designation='génie civil')
        self.assertEqual(self.services.jurys.generate_code(section.id), 'GC-001')

    def test_next_code_follows_highest(self):
        section = Section.objects.create(designation='Génie Civil')
        self.services.jurys.create(JuryData(section_id=section.id, designation='A', code='GC-007'))
        self.services.jurys.create(JuryData(section_id=section.id, designation='B', code='GC-002'))
        self.assertEqual(self.services.jurys.generate_code(section.id), 'GC-008')
        jury = self.services.jurys.create(JuryData(section_id=section.id, designation='C'))
        self.assertEqual(jury.code, 'GC-008')

    def test_codes_without_prefix_are_ignored(self):
        section = Section.objects.create(designation='Génie Civil')
        self.services.jurys.create(JuryData(section_id=section.id, designation='A', code='GCX-050'))
        self.services.jurys.create(JuryData(section_id=section.id, designation='B', code='GC-ABC'))
        self.assertEqual(self.services.jurys.generate_code(section.id), 'GC-001')

    def test_unknown_section_falls_back_to_jury_prefix(self):
        self.assertEqual(self.services.jurys.generate_code(999999), 'JURY-001')

    def test_create_validations(self):
        registry = self.services.jurys
        with self.assertRaises(InvalidArgument):
            registry.create(JuryData(section_id=None, designation='X'))
        with self.assertRaises(InvalidArgument):
            registry.create(JuryData(section_id=self.section.id, designation='   '))
        with self.assertRaises(InvalidArgument):
            registry.create(JuryData(section_id=self.section.id, designation='X', autorisation='totale'))
        with self.assertRaises(NotFound):
            registry.create(JuryData(section_id=999999, designation='X'))
        with self.assertRaises(Conflict):
            registry.create(JuryData(section_id=self.section.id, designation='Jury L1'))
        with self.assertRaises(Conflict):
            registry.create(JuryData(section_id=self.section.id, designation='Autre', code='SI-001'))
        with self.assertRaises(NotFound):
            registry.create(JuryData(section_id=self.section.id, designation='Autre', membre_id=999999))
        self.assertEqual(Jury.objects.count(), 1)

    def test_same_designation_allowed_in_other_section(self):
        section = Section.objects.create(designation='Droit')
        jury = self.services.jurys.create(JuryData(section_id=section.id, designation='Jury L1'))
        self.assertEqual(jury.code, 'D-001')

    def test_update(self):
        registry = self.services.jurys
        jury = registry.update(self.jury.id, JuryUpdate(autorisation=Jury.NORMALE, membre_id=self.externe.id))
        self.assertEqual(jury.autorisation, Jury.NORMALE)
        self.assertEqual(jury.membre_id, self.externe.id)
        jury = registry.update(self.jury.id, JuryUpdate(membre_id=None))
        self.assertIsNone(jury.membre_id)

        with self.assertRaises(InvalidArgument):
            registry.update(self.jury.id, JuryUpdate())
        with self.assertRaises(NotFound):
            registry.update(999999, JuryUpdate(designation='X'))
        other = registry.create(JuryData(section_id=self.section.id, designation='Jury L2'))
        with self.assertRaises(Conflict):
            registry.update(other.id, JuryUpdate(code='SI-001'))
        with self.assertRaises(Conflict):
            registry.update(other.id, JuryUpdate(designation='Jury L1'))
        with self.assertRaises(NotFound):
            registry.update(other.id, JuryUpdate(president_id=999999))

    def test_delete_referenced_jury_conflicts(self):
        with self.assertRaises(Conflict):
            self.services.jurys.delete(self.jury.id)
        self.assertTrue(Jury.objects.filter(pk=self.jury.id).exists())

    def test_delete_unreferenced_jury(self):
        other = self.services.jurys.create(JuryData(section_id=self.section.id, designation='Jury L2'))
        self.services.jurys.delete(other.id)
        self.assertFalse(Jury.objects.filter(pk=other.id).exists())
        with self.assertRaises(NotFound):
            self.services.jurys.delete(other.id)

    def test_assign(self):
        registry = self.services.jurys
        with self.assertRaises(Conflict):
            registry.assign(self.niveau.id, self.jury.id, self.annee.id)
        with self.assertRaises(NotFound):
            registry.assign(999999, self.jury.id, self.annee.id)
        with self.assertRaises(NotFound):
            registry.assign(self.niveau.id, 999999, self.annee.id)
        with self.assertRaises(NotFound):
            registry.assign(self.niveau.id, self.jury.id, 999999)

        annee = Annee.objects.create(debut=2024, fin=2025)
        registry.assign(self.niveau.id, self.jury.id, annee.id)
        self.assertEqual(len(registry.niveaux_for_jury(self.jury.id)), 2)
        self.assertEqual(len(registry.niveaux_for_jury(self.jury.id, annee.id)), 1)
        self.assertEqual(len(registry.jurys_for_niveau(self.niveau.id, self.annee.id)), 1)

    def test_remove_assignment_without_grades(self):
        self.services.jurys.remove(self.affectation.id)
        self.assertFalse(NiveauJury.objects.filter(pk=self.affectation.id).exists())
        with self.assertRaises(NotFound):
            self.services.jurys.remove(self.affectation.id)

    def test_remove_assignment_with_grades_conflicts(self):
        self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 8)
        with self.assertRaises(Conflict):
            self.services.jurys.remove(self.affectation.id)
        self.assertTrue(NiveauJury.objects.filter(pk=self.affectation.id).exists())

    def test_assignment_traces_follow_current_members(self):
        self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 8)
        self.services.jurys.update(self.jury.id, JuryUpdate(secretaire_id=None))
        self.assertEqual(self.services.journal.records_for_assignment(self.affectation.id).count(), 0)
        self.services.jurys.remove(self.affectation.id)
        self.assertFalse(NiveauJury.objects.filter(pk=self.affectation.id).exists())
        self.assertEqual(Insertion.objects.count(), 1)

    def test_role_of(self):
        self.assertEqual(role_of(self.jury, self.president.id), Role.PRESIDENT)
        self.assertEqual(role_of(self.jury, self.secretaire.id), Role.SECRETAIRE)
        self.assertEqual(role_of(self.jury, self.externe.id), Role.NONE)


class HierarchyResolverTestCase(CotesTestMixin, TestCase):
    def test_resolve_level(self):
        self.assertEqual(self.services.resolver.resolve_level(self.matiere.id), self.niveau.id)

    def test_unknown_matiere(self):
        with self.assertRaises(NotFound):
            self.services.resolver.resolve_level(999999)


class AuthorizationTestCase(CotesTestMixin, TestCase):
    def test_restricted_jury_excludes_rattrapage(self):
        autorisation = self.services.autorisation.authorize(self.secretaire.id, self.fiche.id)
        self.assertEqual(autorisation.jury_id, self.jury.id)
        self.assertEqual(autorisation.role, Role.SECRETAIRE)
        self.assertEqual(autorisation.permitted, {'tp', 'td', 'examen'})
        self.assertFalse(autorisation.to_dict()['autorisations']['rattrapage'])

    def test_normal_jury_includes_rattrapage(self):
        self.services.jurys.update(self.jury.id, JuryUpdate(autorisation=Jury.NORMALE))
        autorisation = self.services.autorisation.authorize(self.president.id, self.fiche.id)
        self.assertEqual(autorisation.role, Role.PRESIDENT)
        self.assertEqual(autorisation.permitted, {'tp', 'td', 'examen', 'rattrapage'})

    def test_outsider_is_denied(self):
        with self.assertRaises(PermissionDenied):
            self.services.autorisation.authorize(self.externe.id, self.fiche.id)

    def test_jury_of_other_year_does_not_count(self):
        annee = Annee.objects.create(debut=2024, fin=2025)
        other = self.services.jurys.create(JuryData(
            section_id=self.section.id, designation='Jury 2024', membre_id=self.externe.id
        ))
        self.services.jurys.assign(self.niveau.id, other.id, annee.id)
        with self.assertRaises(PermissionDenied):
            self.services.autorisation.authorize(self.externe.id, self.fiche.id)

    def test_unknown_fiche_or_agent(self):
        with self.assertRaises(NotFound):
            self.services.autorisation.authorize(self.secretaire.id, 999999)
        with self.assertRaises(NotFound):
            self.services.autorisation.authorize(999999, self.fiche.id)


class GradeLedgerTestCase(CotesTestMixin, TestCase):
    def test_set_component_writes_and_journals(self):
        fiche, insertion = self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'examen', 15)
        self.assertEqual(fiche.examen, 15)
        self.fiche.refresh_from_db()
        self.assertEqual(self.fiche.examen, 15)
        self.assertEqual(Insertion.objects.count(), 1)
        self.assertEqual(insertion.last_val, 3)
        self.assertEqual(insertion.agent_id, self.secretaire.id)
        self.assertEqual(insertion.cote, 'examen')
        self.assertEqual(insertion.description, 'Modification de la cote examen de 3 à 15')

    def test_custom_description(self):
        _, insertion = self.services.cotation.set_component(
            self.fiche.id, self.secretaire.id, 'td', 6.5, 'Erreur de saisie'
        )
        self.assertEqual(insertion.description, 'Erreur de saisie')
        self.assertEqual(insertion.last_val, 4)

    def test_each_call_appends_one_entry_with_preimage(self):
        ledger = self.services.cotation
        ledger.set_component(self.fiche.id, self.secretaire.id, 'tp', 7)
        ledger.set_component(self.fiche.id, self.secretaire.id, 'tp', 9)
        entries = list(Insertion.objects.order_by('id'))
        self.assertEqual([e.last_val for e in entries], [5, 7])

    def test_rattrapage_refused_under_restricted_jury(self):
        with self.assertRaises(PermissionDenied):
            self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'rattrapage', 12)
        self.fiche.refresh_from_db()
        self.assertIsNone(self.fiche.rattrapage)
        self.assertEqual(Insertion.objects.count(), 0)

    def test_rattrapage_allowed_under_normal_jury(self):
        self.services.jurys.update(self.jury.id, JuryUpdate(autorisation=Jury.NORMALE))
        _, insertion = self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'rattrapage', 12)
        self.assertIsNone(insertion.last_val)
        self.assertEqual(insertion.description, 'Modification de la cote rattrapage de 0 à 12')

    def test_out_of_range_value(self):
        for valeur in (25, -1, 20.5):
            with self.assertRaises(InvalidArgument):
                self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', valeur)
        # checked before authorization: an outsider gets the same error
        with self.assertRaises(InvalidArgument):
            self.services.cotation.set_component(self.fiche.id, self.externe.id, 'tp', 25)
        self.fiche.refresh_from_db()
        self.assertEqual(self.fiche.tp, 5)
        self.assertEqual(Insertion.objects.count(), 0)

    def test_bounds_are_inclusive(self):
        self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 0)
        self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'td', 20)
        self.assertEqual(Insertion.objects.count(), 2)

    def test_invalid_component(self):
        with self.assertRaises(InvalidArgument):
            self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'moyenne', 12)
        with self.assertRaises(InvalidArgument):
            self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 'douze')

    def test_outsider_has_no_side_effect(self):
        for cote in ('tp', 'td', 'examen', 'rattrapage'):
            with self.assertRaises(PermissionDenied):
                self.services.cotation.set_component(self.fiche.id, self.externe.id, cote, 10)
        self.fiche.refresh_from_db()
        self.assertEqual((self.fiche.tp, self.fiche.td, self.fiche.examen), (5, 4, 3))
        self.assertEqual(Insertion.objects.count(), 0)

    def test_authorization_is_rechecked_on_every_call(self):
        self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 8)
        self.services.jurys.update(self.jury.id, JuryUpdate(secretaire_id=None))
        with self.assertRaises(PermissionDenied):
            self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 9)
        self.fiche.refresh_from_db()
        self.assertEqual(self.fiche.tp, 8)

    def test_authorization_is_checked_under_the_sheet_lock(self):
        engine = self.services.autorisation
        authorize = engine.authorize
        depth = len(connection.savepoint_ids)
        depths = []

        def revoked_meanwhile(agent_id, fiche_id):
            depths.append(len(connection.savepoint_ids))
            self.services.jurys.update(self.jury.id, JuryUpdate(secretaire_id=None))
            return authorize(agent_id, fiche_id)

        with mock.patch.object(engine, 'authorize', side_effect=revoked_meanwhile):
            with self.assertRaises(PermissionDenied):
                self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 12)
        self.assertGreater(depths[0], depth)
        self.fiche.refresh_from_db()
        self.assertEqual(self.fiche.tp, 5)
        self.assertEqual(Insertion.objects.count(), 0)

    def test_journal_failure_rolls_back_grade(self):
        with mock.patch.object(self.services.journal, 'append', side_effect=DatabaseError('disque plein')):
            with self.assertRaises(DatabaseError):
                self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'examen', 15)
        self.fiche.refresh_from_db()
        self.assertEqual(self.fiche.examen, 3)
        self.assertEqual(Insertion.objects.count(), 0)


class AuditLogTestCase(CotesTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        ledger = self.services.cotation
        ledger.set_component(self.fiche.id, self.secretaire.id, 'tp', 8)
        ledger.set_component(self.fiche.id, self.secretaire.id, 'examen', 9)
        self.insertion = Insertion.objects.order_by('id').first()

    def test_insertions_are_immutable(self):
        self.insertion.description = 'falsifié'
        with self.assertRaises(TypeError):
            self.insertion.save()
        with self.assertRaises(TypeError):
            self.insertion.delete()
        with self.assertRaises(TypeError):
            Insertion.objects.all().update(last_val=0)
        with self.assertRaises(TypeError):
            Insertion.objects.all().delete()
        self.insertion.refresh_from_db()
        self.assertEqual(self.insertion.last_val, 5)

    def test_records(self):
        journal = self.services.journal
        self.assertEqual(journal.records_for_fiche(self.fiche.id).count(), 2)
        self.assertEqual(journal.records_for_agent(self.secretaire.id).count(), 2)
        self.assertEqual(journal.records_for_agent(self.president.id).count(), 0)
        self.assertEqual(journal.records_for_annee(self.annee.id).count(), 2)
        self.assertEqual(journal.records_for_assignment(self.affectation.id).count(), 2)
        self.assertEqual(len(journal.latest_for_etudiant(self.etudiant.id, limit=1)), 1)
        self.assertEqual(len(journal.latest_for_matiere(self.matiere.id, self.annee.id)), 2)
        with self.assertRaises(NotFound):
            journal.get(999999)

    def test_assignment_records_ignore_students_not_enrolled(self):
        autre = Etudiant.objects.create(nom='Ilunga', matricule='SI002')
        fiche = FicheCotation.objects.create(etudiant=autre, matiere=self.matiere, annee=self.annee)
        self.services.cotation.set_component(fiche.id, self.secretaire.id, 'tp', 8)
        self.assertEqual(self.services.journal.records_for_assignment(self.affectation.id).count(), 2)

    def test_statistics_by_agent(self):
        stats = self.services.journal.statistics_by_agent(self.annee.id)
        self.assertEqual(len(stats), 1)
        self.assertEqual(stats[0]['agent_id'], self.secretaire.id)
        self.assertEqual(stats[0]['total_modifications'], 2)
        self.assertEqual(stats[0]['tp_modifications'], 1)
        self.assertEqual(stats[0]['examen_modifications'], 1)
        self.assertEqual(stats[0]['rattrapage_modifications'], 0)

    def test_statistics_by_jury(self):
        stats = self.services.journal.statistics_by_jury(self.annee.id)
        self.assertEqual(len(stats), 1)
        self.assertEqual(stats[0]['jury_code'], 'SI-001')
        self.assertEqual(stats[0]['total_modifications'], 2)
        self.assertEqual(stats[0]['agents_count'], 1)
        self.assertEqual(stats[0]['etudiants_count'], 1)


class FicheStatutTestCase(TestCase):
    def test_statut(self):
        self.assertEqual(FicheCotation(tp=4, td=3, examen=3).statut, FicheCotation.REUSSI)
        self.assertEqual(FicheCotation(tp=2, td=2, examen=2, rattrapage=12).statut, FicheCotation.REUSSI_RATTRAPAGE)
        self.assertEqual(FicheCotation(tp=2, td=2, examen=2, rattrapage=8).statut, FicheCotation.ECHOUE_RATTRAPAGE)
        self.assertEqual(FicheCotation(tp=2, td=2, examen=2).statut, FicheCotation.ECHOUE)
        self.assertEqual(FicheCotation(tp=2, td=2.5, examen=3).total, 7.5)


@override_settings(ALLOWED_HOSTS=["testserver"])
class ApiTestCase(CotesTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.admin = User.objects.create_user('admin', password='x', is_staff=True)

    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type='application/json')

    def test_login_required(self):
        r = self.client.get('/api/jurys/')
        self.assertEqual(r.status_code, 401)
        self.assertFalse(r.json()['success'])
        self.assertEqual(r.json()['metadata']['kind'], 'not_authenticated')

        r = self.post_json(f'/api/fiches/{self.fiche.id}/cote/', {'cote': 'tp', 'valeur': 12})
        self.assertEqual(r.status_code, 401)
        self.assertEqual(Insertion.objects.count(), 0)

    def test_wrong_method_uses_envelope(self):
        self.client.login(username='secretaire', password='x')
        r = self.client.get(f'/api/fiches/{self.fiche.id}/cote/')
        self.assertEqual(r.status_code, 405)
        self.assertEqual(r['Allow'], 'POST')
        self.assertEqual(r.json()['metadata']['kind'], 'method_not_allowed')

        r = self.client.delete(f'/api/statistiques/agents/{self.annee.id}/')
        self.assertEqual(r.status_code, 405)
        self.assertFalse(r.json()['success'])

    def test_cote_update(self):
        self.client.login(username='secretaire', password='x')
        r = self.post_json(f'/api/fiches/{self.fiche.id}/cote/', {'cote': 'examen', 'valeur': 15})
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['fiche']['examen'], 15)
        self.assertEqual(body['data']['fiche']['total'], 24)
        self.assertEqual(body['data']['fiche']['statut'], 'Réussi')
        self.assertEqual(body['metadata']['insertId'], body['data']['insertion_id'])

    def test_cote_update_errors_use_envelope(self):
        self.client.login(username='secretaire', password='x')
        r = self.post_json(f'/api/fiches/{self.fiche.id}/cote/', {'cote': 'rattrapage', 'valeur': 12})
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()['metadata']['kind'], 'permission_denied')
        self.assertFalse(r.json()['success'])

        r = self.post_json(f'/api/fiches/{self.fiche.id}/cote/', {'cote': 'tp', 'valeur': 25})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()['metadata']['kind'], 'invalid_argument')

        r = self.post_json('/api/fiches/999999/cote/', {'cote': 'tp', 'valeur': 12})
        self.assertEqual(r.status_code, 404)
        self.assertEqual(Insertion.objects.count(), 0)

    def test_cote_update_form_encoded(self):
        self.client.login(username='secretaire', password='x')
        r = self.client.post(f'/api/fiches/{self.fiche.id}/cote/', data={'cote': 'td', 'valeur': '11.5'})
        self.assertEqual(r.status_code, 200)
        self.fiche.refresh_from_db()
        self.assertEqual(self.fiche.td, 11.5)

    def test_user_without_agent_is_denied(self):
        self.client.login(username='admin', password='x')
        r = self.post_json(f'/api/fiches/{self.fiche.id}/cote/', {'cote': 'tp', 'valeur': 12})
        self.assertEqual(r.status_code, 403)

    def test_storage_fault_is_reported(self):
        self.client.login(username='secretaire', password='x')
        with mock.patch('cotes.services.journal.AuditLog.append', side_effect=DatabaseError('connexion perdue')):
            r = self.post_json(f'/api/fiches/{self.fiche.id}/cote/', {'cote': 'tp', 'valeur': 12})
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()['metadata']['kind'], 'storage_fault')
        self.assertEqual(r.json()['metadata']['detail'], 'connexion perdue')
        self.fiche.refresh_from_db()
        self.assertEqual(self.fiche.tp, 5)

    def test_autorisation(self):
        self.client.login(username='secretaire', password='x')
        r = self.client.get(f'/api/fiches/{self.fiche.id}/autorisation/')
        self.assertEqual(r.status_code, 200)
        data = r.json()['data']
        self.assertEqual(data['role'], 'secretaire')
        self.assertEqual(data['jury_id'], self.jury.id)
        self.assertEqual(data['autorisations'], {'tp': True, 'td': True, 'examen': True, 'rattrapage': False})

        self.client.login(username='externe', password='x')
        r = self.client.get(f'/api/fiches/{self.fiche.id}/autorisation/')
        self.assertEqual(r.status_code, 403)

    def test_jury_crud(self):
        self.client.login(username='admin', password='x')
        r = self.post_json('/api/jurys/', {'section': self.section.id, 'designation': 'Jury L2',
                                           'secretaire': self.president.id})
        self.assertEqual(r.status_code, 201)
        jury = r.json()['data']
        self.assertEqual(jury['code'], 'SI-002')
        self.assertEqual(jury['autorisation'], 'normale')
        self.assertEqual(jury['secretaire']['id'], self.president.id)

        r = self.post_json('/api/jurys/', {'section': self.section.id, 'designation': 'Jury L2'})
        self.assertEqual(r.status_code, 409)

        r = self.client.patch(f"/api/jurys/{jury['id']}/", data=json.dumps({'autorisation': 'restreinte'}),
                              content_type='application/json')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()['data']['autorisation'], 'restreinte')
        self.assertEqual(r.json()['data']['secretaire']['id'], self.president.id)

        r = self.client.get(f'/api/sections/{self.section.id}/jurys/')
        self.assertEqual(r.json()['metadata']['count'], 2)
        r = self.client.get('/api/jurys/code/SI-002/')
        self.assertEqual(r.json()['data']['id'], jury['id'])

        r = self.client.delete(f'/api/jurys/{self.jury.id}/')
        self.assertEqual(r.status_code, 409)
        r = self.client.delete(f"/api/jurys/{jury['id']}/")
        self.assertEqual(r.status_code, 200)
        r = self.client.get(f"/api/jurys/{jury['id']}/")
        self.assertEqual(r.status_code, 404)

    def test_jury_create_requires_staff(self):
        self.client.login(username='secretaire', password='x')
        r = self.post_json('/api/jurys/', {'section': self.section.id, 'designation': 'Jury L2'})
        self.assertEqual(r.status_code, 403)
        r = self.client.get('/api/jurys/')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()['data'][0]['code'], 'SI-001')

    def test_affectations(self):
        self.client.login(username='admin', password='x')
        r = self.post_json('/api/niveau-jury/', {'niveau': self.niveau.id, 'jury': self.jury.id,
                                                 'annee': self.annee.id})
        self.assertEqual(r.status_code, 409)
        r = self.post_json('/api/niveau-jury/', {'niveau': self.niveau.id, 'jury': self.jury.id})
        self.assertEqual(r.status_code, 400)

        r = self.client.get(f'/api/niveaux/{self.niveau.id}/jurys/?annee={self.annee.id}')
        self.assertEqual(r.json()['metadata']['count'], 1)
        r = self.client.get(f'/api/jurys/{self.jury.id}/niveaux/')
        self.assertEqual(r.json()['data'][0]['niveau_intitule'], 'L1')

        r = self.client.delete(f'/api/niveau-jury/{self.affectation.id}/')
        self.assertEqual(r.status_code, 200)
        r = self.client.get(f'/api/niveau-jury/{self.affectation.id}/')
        self.assertEqual(r.status_code, 404)

    def test_insertion_listings(self):
        self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 12)
        self.client.login(username='admin', password='x')
        for url in (
            '/api/insertions/',
            f'/api/insertions/annee/{self.annee.id}/',
            f'/api/insertions/agent/{self.secretaire.id}/',
            f'/api/insertions/niveau-jury/{self.affectation.id}/',
            f'/api/fiches/{self.fiche.id}/insertions/',
            f'/api/etudiants/{self.etudiant.id}/modifications/',
            f'/api/matieres/{self.matiere.id}/modifications/?annee={self.annee.id}',
        ):
            r = self.client.get(url)
            self.assertEqual(r.status_code, 200, url)
            self.assertEqual(r.json()['metadata']['count'], 1, url)
        row = r.json()['data'][0]
        self.assertEqual(row['last_val'], 5)
        self.assertEqual(row['tp'], 12)

        r = self.client.get(f'/api/matieres/{self.matiere.id}/modifications/')
        self.assertEqual(r.status_code, 400)
        r = self.client.get('/api/insertions/annee/999999/')
        self.assertEqual(r.status_code, 404)

    def test_statistiques(self):
        self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 12)
        self.client.login(username='admin', password='x')
        r = self.client.get(f'/api/statistiques/agents/{self.annee.id}/')
        self.assertEqual(r.json()['data'][0]['total_modifications'], 1)
        r = self.client.get(f'/api/statistiques/jurys/{self.annee.id}/')
        self.assertEqual(r.json()['data'][0]['tp_modifications'], 1)

    def test_exports(self):
        self.services.cotation.set_component(self.fiche.id, self.secretaire.id, 'tp', 12)
        self.client.login(username='admin', password='x')
        r = self.client.get(f'/api/insertions/annee/{self.annee.id}/export/')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r['Content-Type'], 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')
        self.assertIn('insertions_2023_2024.xlsx', r['Content-Disposition'])

        r = self.client.get(f'/api/fiches/{self.fiche.id}/releve/')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r['Content-Type'], 'application/pdf')
        self.assertTrue(r.content.startswith(b'%PDF'))
