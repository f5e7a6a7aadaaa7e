import functools
import json
import logging
from datetime import datetime
from io import BytesIO
from xml.sax.saxutils import escape

from django.db import DatabaseError
from django.http import HttpResponse, JsonResponse
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .exceptions import (
    CotesError, InvalidArgument, MethodNotAllowed, NotAuthenticated, NotFound, PermissionDenied, StorageFault,
)
from .forms import AffectationForm, CoteForm, JuryForm
from .models import Agent, Annee, FicheCotation
from .services import build_services

logger = logging.getLogger(__name__)


def api_endpoint(*methods):
    """Wrap a view returning ``(data, metadata)`` into the result envelope.

    The session check and the allowed methods are enforced here so that
    refusals use the envelope too. Every error is converted: CotesError keeps
    its kind and status, storage faults become a StorageFault carrying the
    database message.
    """
    def decorator(view):
        @functools.wraps(view)
        def wrapper(request, *args, **kwargs):
            try:
                if not request.user.is_authenticated:
                    raise NotAuthenticated('Authentification requise')
                if request.method not in methods:
                    raise MethodNotAllowed('Méthode non autorisée', method=request.method, allowed=list(methods))
                result = view(request, *args, **kwargs)
            except CotesError as e:
                response = JsonResponse(e.to_dict(), status=e.status)
                if isinstance(e, MethodNotAllowed):
                    response['Allow'] = ', '.join(methods)
                return response
            except DatabaseError as e:
                logger.exception("Erreur de base de données dans %s", view.__name__)
                fault = StorageFault('Erreur de base de données', detail=str(e))
                return JsonResponse(fault.to_dict(), status=fault.status)
            except Exception as e:
                logger.exception("Erreur inattendue dans %s", view.__name__)
                return JsonResponse({
                    'success': False,
                    'error': 'Erreur interne du serveur',
                    'metadata': {'kind': 'error', 'code': 500, 'detail': str(e)},
                }, status=500)

            if isinstance(result, HttpResponse):
                return result
            data, metadata = result if isinstance(result, tuple) else (result, {})
            status = metadata.pop('status', 200)
            return JsonResponse({'success': True, 'data': data, 'metadata': metadata}, status=status)
        return wrapper
    return decorator


def _payload(request):
    # accept JSON body or form-encoded POST as fallback
    if request.content_type == 'application/json' and request.body:
        try:
            data = json.loads(request.body.decode())
        except ValueError:
            raise InvalidArgument('JSON invalide')
        if not isinstance(data, dict):
            raise InvalidArgument('Un objet JSON est attendu')
        return data
    return request.POST.dict()


def _int_param(request, name):
    value = request.GET.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidArgument(f'Paramètre {name} invalide', value=value)


def _require_staff(request):
    if not request.user.is_staff:
        raise PermissionDenied('Réservé au personnel administratif')


def _acting_agent(request):
    try:
        return request.user.agent
    except Agent.DoesNotExist:
        raise PermissionDenied("Aucun agent n'est associé à cet utilisateur")


# ---------- sérialisation ----------

def _agent_dict(agent):
    if agent is None:
        return None
    return {'id': agent.id, 'nom': agent.nom, 'post_nom': agent.post_nom, 'prenom': agent.prenom}


def _jury_dict(jury):
    return {
        'id': jury.id,
        'code': jury.code,
        'designation': jury.designation,
        'autorisation': jury.autorisation,
        'section_id': jury.section_id,
        'section_designation': jury.section.designation,
        'president': _agent_dict(jury.president),
        'secretaire': _agent_dict(jury.secretaire),
        'membre': _agent_dict(jury.membre),
    }


def _affectation_dict(nj):
    return {
        'id': nj.id,
        'niveau_id': nj.niveau_id,
        'niveau_intitule': nj.niveau.intitule,
        'jury_id': nj.jury_id,
        'jury_designation': nj.jury.designation,
        'jury_code': nj.jury.code,
        'section_designation': nj.jury.section.designation,
        'annee_id': nj.annee_id,
        'annee_debut': nj.annee.debut,
        'annee_fin': nj.annee.fin,
    }


def _fiche_dict(fiche):
    return {
        'id': fiche.id,
        'etudiant_id': fiche.etudiant_id,
        'matiere_id': fiche.matiere_id,
        'annee_id': fiche.annee_id,
        'tp': fiche.tp,
        'td': fiche.td,
        'examen': fiche.examen,
        'rattrapage': fiche.rattrapage,
        'total': fiche.total,
        'statut': fiche.statut,
    }


def _insertion_dict(insertion):
    fiche = insertion.fiche
    return {
        'id': insertion.id,
        'fiche_id': insertion.fiche_id,
        'agent': _agent_dict(insertion.agent),
        'cote': insertion.cote,
        'last_val': insertion.last_val,
        'description': insertion.description,
        'date_insert': insertion.date_insert.isoformat(),
        'etudiant_id': fiche.etudiant_id,
        'matricule': fiche.etudiant.matricule,
        'matiere_code': fiche.matiere.code,
        'matiere_designation': fiche.matiere.designation,
        'annee': str(fiche.annee),
        # current values of the sheet; the caller picks the relevant one
        'tp': fiche.tp,
        'td': fiche.td,
        'examen': fiche.examen,
        'rattrapage': fiche.rattrapage,
    }


def _insertions(rows):
    data = [_insertion_dict(i) for i in rows]
    return data, {'count': len(data)}


# ---------- Jurys ----------

@api_endpoint('GET', 'POST')
def jurys(request):
    services = build_services()
    if request.method == 'GET':
        data = [_jury_dict(j) for j in services.jurys.list()]
        return data, {'count': len(data)}
    _require_staff(request)
    jury = services.jurys.create(JuryForm(_payload(request)).to_jury_data())
    return _jury_dict(jury), {'status': 201}


@api_endpoint('GET', 'POST', 'PATCH', 'DELETE')
def jury_detail(request, jury_id):
    services = build_services()
    if request.method == 'GET':
        return _jury_dict(services.jurys.get(jury_id))
    _require_staff(request)
    if request.method == 'DELETE':
        services.jurys.delete(jury_id)
        return {'id': jury_id}
    jury = services.jurys.update(jury_id, JuryForm(_payload(request)).to_jury_update())
    return _jury_dict(jury)


@api_endpoint('GET')
def jury_by_code(request, code):
    return _jury_dict(build_services().jurys.get_by_code(code))


@api_endpoint('GET')
def section_jurys(request, section_id):
    data = [_jury_dict(j) for j in build_services().jurys.list_by_section(section_id)]
    return data, {'count': len(data)}


# ---------- Niveau / jury ----------

@api_endpoint('GET', 'POST')
def affectations(request):
    services = build_services()
    if request.method == 'GET':
        data = [_affectation_dict(nj) for nj in services.jurys.list_assignments()]
        return data, {'count': len(data)}
    _require_staff(request)
    form = AffectationForm(_payload(request)).parse()
    nj = services.jurys.assign(form['niveau'], form['jury'], form['annee'])
    return _affectation_dict(nj), {'status': 201}


@api_endpoint('GET', 'DELETE')
def affectation_detail(request, niveau_jury_id):
    services = build_services()
    if request.method == 'GET':
        return _affectation_dict(services.jurys.get_assignment(niveau_jury_id))
    _require_staff(request)
    services.jurys.remove(niveau_jury_id)
    return {'id': niveau_jury_id}


@api_endpoint('GET')
def niveau_jurys(request, niveau_id):
    rows = build_services().jurys.jurys_for_niveau(niveau_id, _int_param(request, 'annee'))
    data = [_affectation_dict(nj) for nj in rows]
    return data, {'count': len(data)}


@api_endpoint('GET')
def jury_niveaux(request, jury_id):
    rows = build_services().jurys.niveaux_for_jury(jury_id, _int_param(request, 'annee'))
    data = [_affectation_dict(nj) for nj in rows]
    return data, {'count': len(data)}


# ---------- Autorisation & cotes ----------

@api_endpoint('GET')
def fiche_autorisation(request, fiche_id):
    agent = _acting_agent(request)
    autorisation = build_services().autorisation.authorize(agent.id, fiche_id)
    return autorisation.to_dict(), {'message': "L'agent est autorisé à modifier cette fiche"}


@api_endpoint('POST')
def cote_update(request, fiche_id):
    agent = _acting_agent(request)
    data = CoteForm(_payload(request)).parse()
    fiche, insertion = build_services().cotation.set_component(
        fiche_id, agent.id, data['cote'], data['valeur'], data['description'] or None
    )
    return {'fiche': _fiche_dict(fiche), 'insertion_id': insertion.id}, {'insertId': insertion.id}


# ---------- Journal ----------

@api_endpoint('GET')
def insertions_list(request):
    return _insertions(build_services().journal.all())


@api_endpoint('GET')
def insertion_detail(request, insertion_id):
    return _insertion_dict(build_services().journal.get(insertion_id))


@api_endpoint('GET')
def fiche_insertions(request, fiche_id):
    if not FicheCotation.objects.filter(pk=fiche_id).exists():
        raise NotFound('Fiche de cotation introuvable', fiche_id=fiche_id)
    return _insertions(build_services().journal.records_for_fiche(fiche_id))


@api_endpoint('GET')
def agent_insertions(request, agent_id):
    if not Agent.objects.filter(pk=agent_id).exists():
        raise NotFound('Agent introuvable', agent_id=agent_id)
    return _insertions(build_services().journal.records_for_agent(agent_id))


@api_endpoint('GET')
def annee_insertions(request, annee_id):
    if not Annee.objects.filter(pk=annee_id).exists():
        raise NotFound('Année académique introuvable', annee_id=annee_id)
    return _insertions(build_services().journal.records_for_annee(annee_id))


@api_endpoint('GET')
def affectation_insertions(request, niveau_jury_id):
    return _insertions(build_services().journal.records_for_assignment(niveau_jury_id))


@api_endpoint('GET')
def etudiant_modifications(request, etudiant_id):
    limit = _int_param(request, 'limit') or 10
    return _insertions(build_services().journal.latest_for_etudiant(etudiant_id, limit))


@api_endpoint('GET')
def matiere_modifications(request, matiere_id):
    annee_id = _int_param(request, 'annee')
    if annee_id is None:
        raise InvalidArgument("Le paramètre annee est requis")
    limit = _int_param(request, 'limit') or 20
    return _insertions(build_services().journal.latest_for_matiere(matiere_id, annee_id, limit))


@api_endpoint('GET')
def statistiques_agents(request, annee_id):
    return build_services().journal.statistics_by_agent(annee_id)


@api_endpoint('GET')
def statistiques_jurys(request, annee_id):
    return build_services().journal.statistics_by_jury(annee_id)


# ---------- Exports ----------

@api_endpoint('GET')
def insertions_export_excel(request, annee_id):
    """Export the grade modification journal of an academic year to Excel."""
    _require_staff(request)
    try:
        annee = Annee.objects.get(pk=annee_id)
    except Annee.DoesNotExist:
        raise NotFound('Année académique introuvable', annee_id=annee_id)

    wb = Workbook()
    ws = wb.active
    ws.title = 'Insertions'

    headers = ['Date', 'Agent', 'Matricule', 'Matière', 'Cote', 'Ancienne valeur', 'Description']
    ws.append(headers)
    for insertion in build_services().journal.records_for_annee(annee.id):
        ws.append([
            insertion.date_insert.strftime('%d/%m/%Y %H:%M'),
            insertion.agent.nom_complet,
            insertion.fiche.etudiant.matricule,
            insertion.fiche.matiere.code,
            insertion.cote,
            insertion.last_val if insertion.last_val is not None else '',
            insertion.description,
        ])

    header_fill = PatternFill(start_color='1F4788', end_color='1F4788', fill_type='solid')
    header_font = Font(bold=True, color='FFFFFF')
    for cell in ws[1]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal='center')

    for column, width in zip('ABCDEFG', (18, 25, 15, 12, 12, 15, 50)):
        ws.column_dimensions[column].width = width

    output = BytesIO()
    wb.save(output)
    output.seek(0)

    response = HttpResponse(
        output.getvalue(),
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    response['Content-Disposition'] = f'attachment; filename="insertions_{annee.debut}_{annee.fin}.xlsx"'
    return response


@api_endpoint('GET')
def fiche_releve_pdf(request, fiche_id):
    """Export a grade sheet and its modification history as PDF."""
    try:
        fiche = FicheCotation.objects.select_related('etudiant', 'matiere', 'annee').get(pk=fiche_id)
    except FicheCotation.DoesNotExist:
        raise NotFound('Fiche de cotation introuvable', fiche_id=fiche_id)
    historique = build_services().journal.records_for_fiche(fiche.id)

    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, topMargin=20, bottomMargin=20)
    elements = []

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=16,
        textColor=colors.HexColor('#1f4788'),
        spaceAfter=6,
        alignment=TA_CENTER
    )
    info_style = styles['Normal']

    etudiant = fiche.etudiant
    elements.append(Paragraph(f"Fiche de cotation - {etudiant.nom} {etudiant.post_nom}", title_style))
    info_text = (f"<b>Matricule:</b> {etudiant.matricule} | <b>Matière:</b> {fiche.matiere.designation} "
                 f"| <b>Année:</b> {fiche.annee}")
    elements.append(Paragraph(info_text, info_style))
    elements.append(Spacer(1, 12))

    def fmt(value):
        return str(value) if value is not None else '—'

    cotes = Table(
        [['TP', 'TD', 'Examen', 'Total', 'Rattrapage', 'Statut'],
         [fmt(fiche.tp), fmt(fiche.td), fmt(fiche.examen), fmt(fiche.total), fmt(fiche.rattrapage), fiche.statut]],
        colWidths=[0.8*inch, 0.8*inch, 0.8*inch, 0.8*inch, 1*inch, 1.8*inch],
    )
    cotes.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1f4788')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
    ]))
    elements.append(cotes)
    elements.append(Spacer(1, 12))

    elements.append(Paragraph("<b>Historique des modifications</b>", info_style))
    table_data = [['Date', 'Agent', 'Cote', 'Ancienne valeur', 'Description']]
    for insertion in historique:
        table_data.append([
            insertion.date_insert.strftime('%d/%m/%Y %H:%M'),
            insertion.agent.nom_complet,
            insertion.cote,
            fmt(insertion.last_val),
            Paragraph(escape(insertion.description), info_style),
        ])
    table = Table(table_data, colWidths=[1.1*inch, 1.6*inch, 0.8*inch, 1*inch, 2.6*inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1f4788')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f0f0f0')]),
    ]))
    elements.append(table)

    elements.append(Spacer(1, 12))
    elements.append(Paragraph(f"<i>Généré le {datetime.now().strftime('%d/%m/%Y à %H:%M')}</i>", info_style))

    doc.build(elements)
    buffer.seek(0)

    response = HttpResponse(buffer.getvalue(), content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="fiche_{etudiant.matricule}_{fiche.matiere.code}.pdf"'
    return response
