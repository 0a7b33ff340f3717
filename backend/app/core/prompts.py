"""
Personalization prompts - Dutch B2B cold e-mail copy for regional job platforms
"""
from backend.app.models import Candidate

CATEGORIES = [
    "administratief", "agrarisch", "automotive", "beveiliging", "bouw", "communicatie",
    "creatief en design", "detailhandel", "energie en milieu", "engineering", "facility",
    "financieel", "horeca", "hovenier", "ict", "inkoop", "juridisch", "klantenservice",
    "kwaliteit", "laboratorium", "leidinggevend", "logistiek en transport", "magazijn",
    "management", "maritiem", "marketing", "media en journalistiek", "montage en installatie",
    "onderwijs", "onderhoud en schoonmaak", "personeelszaken", "productie", "sales en commercie",
    "sport en recreatie", "techniek", "tuinbouw", "uitzend en flex", "vastgoed",
    "verzorging en welzijn", "zorg",
]

REGION_KNOWLEDGE = {
    "Westland": "glastuinbouw, kwekerijen, logistiek, techniek, veel seizoenswerk",
    "Rotterdam": "haven, logistiek, transport, industrie, techniek",
    "Den Haag": "overheid, zakelijke dienstverlening, ICT, horeca",
    "Delft": "tech, innovatie, studenten, startups",
    "Drechtsteden": "maritiem, scheepsbouw, industrie, metaal",
    "Leiden": "zorg, biotech, onderwijs, wetenschap",
}


def _region_lines() -> str:
    return "\n".join(f"- {region}: {traits}" for region, traits in REGION_KNOWLEDGE.items())


PERSONALIZATION_SYSTEM_PROMPT = f"""Je bent een Nederlandse B2B copywriter voor regionale vacatureplatformen \
(zoals WestlandseBanen, RotterdamseBanen, HaagseBanen). Onze platformen zijn een betaalbaar, lokaal \
alternatief voor de grote jobboards en bereiken 5.000-45.000 bezoekers per maand per regio.

Regio-kennis:
{_region_lines()}

Taken:
1. normalized_title: vacaturetitel zonder bedrijfsnaam, locatie, m/v, "gezocht". Geen vacature: null.
2. normalized_company: bedrijfsnaam zoals mensen hem uitspreken, zonder B.V., VOF, Holding, Nederland.
3. category: kies uit: {", ".join(CATEGORIES)}. Confidence onder 95? Vul custom_category in.
4. similar_companies: 2-3 vergelijkbare MKB-bedrijven (max ~200 medewerkers), zelfde sector en bij \
voorkeur regio. Geen multinationals. Geen namen bekend? Beschrijf het type bedrijf.
5. region + region_insight: regio op basis van bedrijfs- en vacaturelocatie, met een observatie over \
de arbeidsmarkt (max 25 woorden).
6. pain_point: belangrijkste recruitment-uitdaging in deze sector/regio (max 25 woorden).
7. personalization: max 80 woorden, informeel-professioneel (je/jullie). Geen vragen, geen CTA, \
geen superlatieven, geen "Ik zag dat...". Noem geen similar_companies. Weinig informatie? Liever \
twee kloppende zinnen over functiegroep en regio dan vage aannames over het bedrijf.

Antwoord uitsluitend met een JSON-object met de velden:
normalized_title, normalized_company, company_description (max 50 woorden), category, \
custom_category, confidence (0-100), similar_companies, similar_companies_type, sector, region, \
region_insight, pain_point, personalization, reasoning."""


def build_user_prompt(candidate: Candidate) -> str:
    """Per-contact prompt from the candidate snapshot"""
    industries = ", ".join(candidate.company_industries or []) or "Onbekend"
    job_location = candidate.job_posting_location or candidate.company_location or "Onbekend"

    return f"""Analyseer en verrijk dit bedrijf voor onze cold e-mail campagne:

**Bedrijf:** {candidate.company_name}
**Vacature:** {candidate.job_posting_title or "Geen specifieke vacature"}
**Website:** {candidate.company_website or "Niet beschikbaar"}
**Omschrijving:** {candidate.company_description or "Niet beschikbaar"}
**Bedrijfslocatie:** {candidate.company_location or "Onbekend"}
**Vacaturelocatie:** {job_location}
**Platform/Regio:** {candidate.platform_name or "Regionaal platform"}
**Industries:** {industries}

Genereer de personalisatie data in JSON format."""
