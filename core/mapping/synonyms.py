"""Label synonym dictionary mapping normalized labels to canonical profile keys."""

from __future__ import annotations

import re
from collections.abc import Mapping
from types import MappingProxyType

FIELD_SYNONYMS: Mapping[str, str] = MappingProxyType(
    {
        # company
        "ragione sociale": "ragione_sociale",
        "ragione_sociale": "ragione_sociale",
        "nome azienda": "ragione_sociale",
        "denominazione": "ragione_sociale",
        "impresa": "ragione_sociale",
        "dell'impresa": "ragione_sociale",
        "forma giuridica": "forma_giuridica",
        "partita iva": "partita_iva",
        "partita_iva": "partita_iva",
        "p.iva": "partita_iva",
        "p. iva": "partita_iva",
        "piva": "partita_iva",
        "p.i.": "partita_iva",
        "sede legale": "indirizzo",
        "sede": "indirizzo",
        "indirizzo": "indirizzo",
        "via": "indirizzo",
        "citta": "citta",
        "città": "citta",
        "comune": "citta",
        "cap": "cap",
        "c.a.p.": "cap",
        "provincia": "provincia",
        "prov.": "provincia",
        "prov": "provincia",
        "telefono": "telefono",
        "tel.": "telefono",
        "tel": "telefono",
        "phone": "telefono",
        "email": "email",
        "e-mail": "email",
        "posta elettronica": "email",
        "pec": "pec",
        "p.e.c.": "pec",
        "posta elettronica certificata": "pec",
        "iban": "iban",
        "iban aziendale": "iban",
        "rappresentante legale": "rappresentante_legale",
        "legale rappresentante": "rappresentante_legale",
        "amministratore": "rappresentante_legale",
        "in qualità di": "ruolo",
        "qualità di": "ruolo",
        # person
        "il sottoscritto": "nome_completo",
        "la sottoscritta": "nome_completo",
        "sottoscritto": "nome_completo",
        "sottoscritta": "nome_completo",
        "nome e cognome": "nome_completo",
        "nome completo": "nome_completo",
        "nominativo": "nome_completo",
        "nome": "nome",
        "cognome": "cognome",
        "codice fiscale": "codice_fiscale",
        "codice_fiscale": "codice_fiscale",
        "c.f.": "codice_fiscale",
        "c.f": "codice_fiscale",
        "cf": "codice_fiscale",
        "cod. fisc.": "codice_fiscale",
        "data di nascita": "data_nascita",
        "data nascita": "data_nascita",
        "nato il": "data_nascita",
        "nata il": "data_nascita",
        "luogo di nascita": "luogo_nascita",
        "luogo nascita": "luogo_nascita",
        "nato a": "luogo_nascita",
        "nata a": "luogo_nascita",
        "residente in": "residenza_citta",
        "residenza": "residenza_indirizzo",
    }
)

_WHITESPACE_RE = re.compile(r"\s+")
_EDGE_PUNCTUATION = " \t,;:()[]{}<>\"'«»“”-_"


def normalize_label(label: str) -> str:
    """Lowercase, collapse whitespace and trim punctuation around a label.

    Dots are kept because abbreviations such as ``c.f.`` rely on them.
    """

    collapsed = _WHITESPACE_RE.sub(" ", label.lower()).strip()
    return collapsed.strip(_EDGE_PUNCTUATION).strip()
