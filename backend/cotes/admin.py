from django.contrib import admin
from .models import (
    Agent, Annee, Etudiant, FicheCotation, Inscription, Insertion, Jury, Matiere, Niveau, NiveauJury,
    Promotion, Section, Unite,
)


@admin.register(Section)
class SectionAdmin(admin.ModelAdmin):
    list_display = ('designation',)
    search_fields = ('designation',)


@admin.register(Agent)
class AgentAdmin(admin.ModelAdmin):
    list_display = ('nom', 'post_nom', 'prenom', 'user')
    search_fields = ('nom', 'post_nom', 'prenom')


@admin.register(Annee)
class AnneeAdmin(admin.ModelAdmin):
    list_display = ('debut', 'fin')


@admin.register(Niveau)
class NiveauAdmin(admin.ModelAdmin):
    list_display = ('intitule', 'systeme')


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ('niveau', 'section', 'orientation')
    list_filter = ('section', 'niveau')


@admin.register(Unite)
class UniteAdmin(admin.ModelAdmin):
    list_display = ('code', 'designation', 'promotion')
    search_fields = ('code', 'designation')


@admin.register(Matiere)
class MatiereAdmin(admin.ModelAdmin):
    list_display = ('code', 'designation', 'unite', 'credit')
    search_fields = ('code', 'designation')


@admin.register(Etudiant)
class EtudiantAdmin(admin.ModelAdmin):
    list_display = ('nom', 'post_nom', 'prenom', 'matricule')
    search_fields = ('nom', 'matricule')


@admin.register(Inscription)
class InscriptionAdmin(admin.ModelAdmin):
    list_display = ('etudiant', 'promotion', 'annee')
    list_filter = ('annee', 'promotion')


@admin.register(Jury)
class JuryAdmin(admin.ModelAdmin):
    list_display = ('code', 'designation', 'section', 'president', 'secretaire', 'membre', 'autorisation')
    list_filter = ('section', 'autorisation')
    search_fields = ('code', 'designation')


@admin.register(NiveauJury)
class NiveauJuryAdmin(admin.ModelAdmin):
    list_display = ('jury', 'niveau', 'annee')
    list_filter = ('annee', 'niveau')


@admin.register(FicheCotation)
class FicheCotationAdmin(admin.ModelAdmin):
    list_display = ('etudiant', 'matiere', 'annee', 'tp', 'td', 'examen', 'rattrapage', 'statut_display')
    list_filter = ('annee', 'matiere')
    search_fields = ('etudiant__nom', 'etudiant__matricule')
    # grades change only through the audited API
    readonly_fields = ('tp', 'td', 'examen', 'rattrapage')

    def statut_display(self, obj):
        return obj.statut
    statut_display.short_description = 'Statut'


@admin.register(Insertion)
class InsertionAdmin(admin.ModelAdmin):
    list_display = ('date_insert', 'agent', 'fiche', 'cote', 'last_val', 'description')
    list_filter = ('cote',)
    search_fields = ('fiche__etudiant__matricule', 'agent__nom')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
