from django.urls import path
from . import views

urlpatterns = [
    # jurys
    path('api/jurys/', views.jurys, name='jurys'),
    path('api/jurys/<int:jury_id>/', views.jury_detail, name='jury_detail'),
    path('api/jurys/code/<str:code>/', views.jury_by_code, name='jury_by_code'),
    path('api/jurys/<int:jury_id>/niveaux/', views.jury_niveaux, name='jury_niveaux'),
    path('api/sections/<int:section_id>/jurys/', views.section_jurys, name='section_jurys'),

    # niveau / jury
    path('api/niveau-jury/', views.affectations, name='affectations'),
    path('api/niveau-jury/<int:niveau_jury_id>/', views.affectation_detail, name='affectation_detail'),
    path('api/niveaux/<int:niveau_id>/jurys/', views.niveau_jurys, name='niveau_jurys'),

    # cotes
    path('api/fiches/<int:fiche_id>/autorisation/', views.fiche_autorisation, name='fiche_autorisation'),
    path('api/fiches/<int:fiche_id>/cote/', views.cote_update, name='cote_update'),
    path('api/fiches/<int:fiche_id>/insertions/', views.fiche_insertions, name='fiche_insertions'),
    path('api/fiches/<int:fiche_id>/releve/', views.fiche_releve_pdf, name='fiche_releve_pdf'),

    # journal
    path('api/insertions/', views.insertions_list, name='insertions_list'),
    path('api/insertions/<int:insertion_id>/', views.insertion_detail, name='insertion_detail'),
    path('api/insertions/annee/<int:annee_id>/', views.annee_insertions, name='annee_insertions'),
    path('api/insertions/annee/<int:annee_id>/export/', views.insertions_export_excel, name='insertions_export_excel'),
    path('api/insertions/agent/<int:agent_id>/', views.agent_insertions, name='agent_insertions'),
    path('api/insertions/niveau-jury/<int:niveau_jury_id>/', views.affectation_insertions,
         name='affectation_insertions'),
    path('api/etudiants/<int:etudiant_id>/modifications/', views.etudiant_modifications,
         name='etudiant_modifications'),
    path('api/matieres/<int:matiere_id>/modifications/', views.matiere_modifications,
         name='matiere_modifications'),

    # statistiques
    path('api/statistiques/agents/<int:annee_id>/', views.statistiques_agents, name='statistiques_agents'),
    path('api/statistiques/jurys/<int:annee_id>/', views.statistiques_jurys, name='statistiques_jurys'),
]
