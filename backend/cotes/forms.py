from django import forms

from .exceptions import InvalidArgument
from .models import Jury
from .services import JuryData, JuryUpdate


class PayloadForm(forms.Form):
    """Form over a JSON/POST payload; ``parse()`` raises InvalidArgument on errors."""

    def parse(self):
        if not self.is_valid():
            errors = {field: [str(e) for e in errs] for field, errs in self.errors.items()}
            raise InvalidArgument('Données invalides', errors=errors)
        return self.cleaned_data


class JuryForm(PayloadForm):
    section = forms.IntegerField(required=False)
    designation = forms.CharField(max_length=150, required=False, strip=False)
    code = forms.CharField(max_length=30, required=False)
    president = forms.IntegerField(required=False)
    secretaire = forms.IntegerField(required=False)
    membre = forms.IntegerField(required=False)
    autorisation = forms.ChoiceField(choices=Jury.AUTORISATION_CHOICES, required=False)

    def to_jury_data(self):
        data = self.parse()
        return JuryData(
            section_id=data['section'],
            designation=data['designation'],
            autorisation=data['autorisation'] or Jury.NORMALE,
            code=data['code'] or None,
            president_id=data['president'],
            secretaire_id=data['secretaire'],
            membre_id=data['membre'],
        )

    def to_jury_update(self):
        data = self.parse()
        update = JuryUpdate()
        # only keys actually sent are changed
        for name in ('section', 'president', 'secretaire', 'membre'):
            if name in self.data:
                setattr(update, f'{name}_id', data[name])
        for name in ('designation', 'code', 'autorisation'):
            if name in self.data:
                setattr(update, name, data[name])
        return update


class AffectationForm(PayloadForm):
    niveau = forms.IntegerField()
    jury = forms.IntegerField()
    annee = forms.IntegerField()


class CoteForm(PayloadForm):
    cote = forms.CharField(max_length=20)
    valeur = forms.FloatField()
    description = forms.CharField(required=False)
