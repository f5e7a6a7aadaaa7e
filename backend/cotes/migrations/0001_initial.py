import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def _cote_validators():
    return [django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(20)]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Section',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('designation', models.CharField(max_length=150)),
            ],
            options={'db_table': 'section'},
        ),
        migrations.CreateModel(
            name='Agent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('nom', models.CharField(max_length=100)),
                ('post_nom', models.CharField(blank=True, max_length=100)),
                ('prenom', models.CharField(blank=True, max_length=100)),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                              related_name='agent', to=settings.AUTH_USER_MODEL)),
            ],
            options={'db_table': 'agent'},
        ),
        migrations.CreateModel(
            name='Annee',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('debut', models.PositiveIntegerField()),
                ('fin', models.PositiveIntegerField()),
            ],
            options={
                'db_table': 'annee',
                'unique_together': {('debut', 'fin')},
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('fin__gt', models.F('debut'))),
                                           name='annee_fin_apres_debut'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Niveau',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('intitule', models.CharField(max_length=50)),
                ('systeme', models.CharField(blank=True, max_length=20)),
            ],
            options={'db_table': 'niveau'},
        ),
        migrations.CreateModel(
            name='Etudiant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('nom', models.CharField(max_length=100)),
                ('post_nom', models.CharField(blank=True, max_length=100)),
                ('prenom', models.CharField(blank=True, max_length=100)),
                ('matricule', models.CharField(max_length=20, unique=True)),
            ],
            options={'db_table': 'etudiant'},
        ),
        migrations.CreateModel(
            name='Promotion',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('orientation', models.CharField(blank=True, max_length=100)),
                ('niveau', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.niveau')),
                ('section', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.section')),
            ],
            options={'db_table': 'promotion'},
        ),
        migrations.CreateModel(
            name='Unite',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=20)),
                ('designation', models.CharField(max_length=150)),
                ('promotion', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.promotion')),
            ],
            options={'db_table': 'unite'},
        ),
        migrations.CreateModel(
            name='Matiere',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=20)),
                ('designation', models.CharField(max_length=150)),
                ('credit', models.PositiveIntegerField(default=0)),
                ('unite', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.unite')),
            ],
            options={'db_table': 'matiere'},
        ),
        migrations.CreateModel(
            name='Inscription',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('annee', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.annee')),
                ('etudiant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.etudiant')),
                ('promotion', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.promotion')),
            ],
            options={
                'db_table': 'promotion_etudiant',
                'unique_together': {('etudiant', 'promotion', 'annee')},
            },
        ),
        migrations.CreateModel(
            name='Jury',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('designation', models.CharField(max_length=150)),
                ('code', models.CharField(max_length=30, unique=True)),
                ('autorisation', models.CharField(choices=[('normale', 'Normale'), ('restreinte', 'Restreinte')],
                                                  default='normale', max_length=20)),
                ('section', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='jurys',
                                              to='cotes.section')),
                ('president', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                related_name='+', to='cotes.agent')),
                ('secretaire', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                 related_name='+', to='cotes.agent')),
                ('membre', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                             related_name='+', to='cotes.agent')),
            ],
            options={
                'db_table': 'jury',
                'ordering': ['designation'],
                'unique_together': {('section', 'designation')},
            },
        ),
        migrations.CreateModel(
            name='NiveauJury',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('annee', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.annee')),
                ('jury', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='affectations',
                                           to='cotes.jury')),
                ('niveau', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.niveau')),
            ],
            options={
                'db_table': 'niveau_jury',
                'unique_together': {('niveau', 'jury', 'annee')},
            },
        ),
        migrations.CreateModel(
            name='FicheCotation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tp', models.FloatField(default=0, validators=_cote_validators())),
                ('td', models.FloatField(default=0, validators=_cote_validators())),
                ('examen', models.FloatField(default=0, validators=_cote_validators())),
                ('rattrapage', models.FloatField(blank=True, null=True, validators=_cote_validators())),
                ('annee', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.annee')),
                ('etudiant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.etudiant')),
                ('matiere', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='cotes.matiere')),
            ],
            options={
                'db_table': 'fiche_cotation',
                'unique_together': {('etudiant', 'matiere', 'annee')},
            },
        ),
        migrations.CreateModel(
            name='Insertion',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('cote', models.CharField(choices=[('tp', 'tp'), ('td', 'td'), ('examen', 'examen'),
                                                   ('rattrapage', 'rattrapage')], max_length=20)),
                ('last_val', models.FloatField(blank=True, null=True)),
                ('description', models.TextField(blank=True)),
                ('date_insert', models.DateTimeField(auto_now_add=True)),
                ('agent', models.ForeignKey(db_column='id_agent', on_delete=django.db.models.deletion.PROTECT,
                                            related_name='insertions', to='cotes.agent')),
                ('fiche', models.ForeignKey(db_column='id_fiche_cotation',
                                            on_delete=django.db.models.deletion.PROTECT,
                                            related_name='insertions', to='cotes.fichecotation')),
            ],
            options={
                'db_table': 'insertion',
                'ordering': ['-date_insert', '-id'],
            },
        ),
    ]
