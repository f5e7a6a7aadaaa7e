from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import F, Q


COTE_MIN = 0
COTE_MAX = 20
SEUIL_REUSSITE = 10

COMPOSANTES = ('tp', 'td', 'examen', 'rattrapage')


def _cote_validators():
    return [MinValueValidator(COTE_MIN), MaxValueValidator(COTE_MAX)]


# ---------- Référentiel (tables gérées par les autres modules) ----------

class Section(models.Model):
    designation = models.CharField(max_length=150)

    class Meta:
        db_table = 'section'

    def __str__(self):
        return self.designation


class Agent(models.Model):
    nom = models.CharField(max_length=100)
    post_nom = models.CharField(max_length=100, blank=True)
    prenom = models.CharField(max_length=100, blank=True)
    # authentication is delegated to contrib.auth (hashed passwords)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='agent'
    )

    class Meta:
        db_table = 'agent'

    @property
    def nom_complet(self):
        return ' '.join(p for p in (self.nom, self.post_nom, self.prenom) if p)

    def __str__(self):
        return self.nom_complet


class Annee(models.Model):
    debut = models.PositiveIntegerField()
    fin = models.PositiveIntegerField()

    class Meta:
        db_table = 'annee'
        unique_together = ('debut', 'fin')
        constraints = [
            models.CheckConstraint(condition=Q(fin__gt=F('debut')), name='annee_fin_apres_debut'),
        ]

    def clean(self):
        if self.fin is not None and self.debut is not None and self.fin <= self.debut:
            raise ValidationError("L'année de fin doit être postérieure à l'année de début")

    def __str__(self):
        return f"{self.debut} - {self.fin}"


class Niveau(models.Model):
    # e.g., L1, G2, Master 1
    intitule = models.CharField(max_length=50)
    systeme = models.CharField(max_length=20, blank=True)

    class Meta:
        db_table = 'niveau'

    def __str__(self):
        return self.intitule


class Promotion(models.Model):
    section = models.ForeignKey(Section, on_delete=models.CASCADE)
    niveau = models.ForeignKey(Niveau, on_delete=models.CASCADE)
    orientation = models.CharField(max_length=100, blank=True)

    class Meta:
        db_table = 'promotion'

    def __str__(self):
        return f"{self.niveau} {self.orientation}".strip()


class Unite(models.Model):
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE)
    code = models.CharField(max_length=20)
    designation = models.CharField(max_length=150)

    class Meta:
        db_table = 'unite'

    def __str__(self):
        return f"{self.code} - {self.designation}"


class Matiere(models.Model):
    unite = models.ForeignKey(Unite, on_delete=models.CASCADE)
    code = models.CharField(max_length=20)
    designation = models.CharField(max_length=150)
    credit = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'matiere'

    def __str__(self):
        return f"{self.code} - {self.designation}"


class Etudiant(models.Model):
    nom = models.CharField(max_length=100)
    post_nom = models.CharField(max_length=100, blank=True)
    prenom = models.CharField(max_length=100, blank=True)
    matricule = models.CharField(max_length=20, unique=True)

    class Meta:
        db_table = 'etudiant'

    def __str__(self):
        return f"{self.nom} {self.post_nom} ({self.matricule})"


class Inscription(models.Model):
    """Inscription d'un étudiant dans une promotion pour une année académique."""
    etudiant = models.ForeignKey(Etudiant, on_delete=models.CASCADE)
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE)
    annee = models.ForeignKey(Annee, on_delete=models.CASCADE)

    class Meta:
        db_table = 'promotion_etudiant'
        unique_together = ('etudiant', 'promotion', 'annee')


# ---------- Jurys ----------

class Jury(models.Model):
    NORMALE = 'normale'
    RESTREINTE = 'restreinte'
    AUTORISATION_CHOICES = [(NORMALE, 'Normale'), (RESTREINTE, 'Restreinte')]

    section = models.ForeignKey(Section, on_delete=models.CASCADE, related_name='jurys')
    designation = models.CharField(max_length=150)
    code = models.CharField(max_length=30, unique=True)
    president = models.ForeignKey(Agent, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    secretaire = models.ForeignKey(Agent, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    membre = models.ForeignKey(Agent, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    autorisation = models.CharField(max_length=20, choices=AUTORISATION_CHOICES, default=NORMALE)

    class Meta:
        db_table = 'jury'
        unique_together = ('section', 'designation')
        ordering = ['designation']

    @property
    def est_restreint(self):
        return self.autorisation == self.RESTREINTE

    def agent_ids(self):
        """Ids of the agents holding a slot, in president/secretaire/membre order."""
        return [i for i in (self.president_id, self.secretaire_id, self.membre_id) if i]

    def __str__(self):
        return f"{self.code} - {self.designation}"


class NiveauJury(models.Model):
    niveau = models.ForeignKey(Niveau, on_delete=models.CASCADE)
    jury = models.ForeignKey(Jury, on_delete=models.PROTECT, related_name='affectations')
    annee = models.ForeignKey(Annee, on_delete=models.CASCADE)

    class Meta:
        db_table = 'niveau_jury'
        unique_together = ('niveau', 'jury', 'annee')

    def __str__(self):
        return f"{self.jury.code} / {self.niveau} / {self.annee}"


# ---------- Cotes ----------

class FicheCotation(models.Model):
    REUSSI = 'Réussi'
    REUSSI_RATTRAPAGE = 'Réussi via rattrapage'
    ECHOUE_RATTRAPAGE = 'Échoué après rattrapage'
    ECHOUE = 'Échoué'

    etudiant = models.ForeignKey(Etudiant, on_delete=models.CASCADE)
    matiere = models.ForeignKey(Matiere, on_delete=models.CASCADE)
    annee = models.ForeignKey(Annee, on_delete=models.CASCADE)

    tp = models.FloatField(default=0, validators=_cote_validators())
    td = models.FloatField(default=0, validators=_cote_validators())
    examen = models.FloatField(default=0, validators=_cote_validators())
    # null means no retake sat
    rattrapage = models.FloatField(null=True, blank=True, validators=_cote_validators())

    class Meta:
        db_table = 'fiche_cotation'
        unique_together = ('etudiant', 'matiere', 'annee')

    def __str__(self):
        return f"{self.etudiant.nom} - {self.matiere.code} ({self.annee})"

    @property
    def total(self):
        return (self.tp or 0) + (self.td or 0) + (self.examen or 0)

    @property
    def statut(self):
        if self.total >= SEUIL_REUSSITE:
            return self.REUSSI
        if self.rattrapage is not None:
            if self.rattrapage >= SEUIL_REUSSITE:
                return self.REUSSI_RATTRAPAGE
            return self.ECHOUE_RATTRAPAGE
        return self.ECHOUE


class InsertionQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise TypeError("Le journal des insertions n'accepte aucune modification")

    def delete(self):
        raise TypeError("Le journal des insertions n'accepte aucune suppression")


class Insertion(models.Model):
    """Entrée du journal: une modification de cote, jamais modifiée ni supprimée."""
    fiche = models.ForeignKey(
        FicheCotation, on_delete=models.PROTECT, db_column='id_fiche_cotation', related_name='insertions'
    )
    agent = models.ForeignKey(Agent, on_delete=models.PROTECT, db_column='id_agent', related_name='insertions')
    cote = models.CharField(max_length=20, choices=[(c, c) for c in COMPOSANTES])
    last_val = models.FloatField(null=True, blank=True)
    description = models.TextField(blank=True)
    date_insert = models.DateTimeField(auto_now_add=True)

    objects = InsertionQuerySet.as_manager()

    class Meta:
        db_table = 'insertion'
        ordering = ['-date_insert', '-id']

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise TypeError("Une insertion existante ne peut pas être modifiée")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Une insertion ne peut pas être supprimée")

    def __str__(self):
        return f"{self.cote} {self.last_val} -> fiche {self.fiche_id} ({self.agent_id})"
