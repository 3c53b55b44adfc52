# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional


@dataclass(frozen=True)
class RosterEntry:
    email: str
    id: str
    username: str
    partner_id: str


ALLOWED_USERS: tuple[RosterEntry, ...] = (
    RosterEntry(
        email="marty.vandenberk@gmail.com",
        id="user1",
        username="Marty",
        partner_id="user2",
    ),
    RosterEntry(
        email="mariekevanderdennen@gmail.com",
        id="user2",
        username="Marieke",
        partner_id="user1",
    ),
)

USERS_BY_ID = MappingProxyType({entry.id: entry for entry in ALLOWED_USERS})


def find_roster_entry_by_email(email: str) -> Optional[RosterEntry]:
    normalized = (email or "").strip().lower()
    for entry in ALLOWED_USERS:
        if entry.email.lower() == normalized:
            return entry
    return None


# ISO weekday (Monday=1) -> user id responsible for choosing that day's question.
CHOICE_WEEKDAYS = MappingProxyType({5: "user1", 6: "user2"})

SYSTEM_QUESTION_BY = "system"

DAILY_QUESTIONS: tuple[str, ...] = (
    "Wat is een klein, onverwacht moment dat je onlangs een diep gevoel van vrede of rust gaf?",
    "Welke geur roept onmiddellijk een sterke, aangename herinnering op? Vertel me over die herinnering.",
    "Als je morgen wakker zou kunnen worden met een nieuwe vaardigheid of talent, wat zou het zijn en waarom?",
    "Beschrijf een droom (een nachtdroom of een dagdroom) die je onlangs hebt gehad en die je is bijgebleven.",
    "Wat is iets kleins dat je vandaag oprecht heeft doen glimlachen?",
    "Welk advies zou je je jongere zelf geven als je 5 minuten terug in de tijd kon gaan?",
    "Als je een mythisch wezen als huisdier zou kunnen hebben, wat zou het zijn en hoe zou je het noemen?",
    "Wat is een liedje waar je altijd vrolijk van wordt? Wat vind je er zo geweldig aan?",
    "Beschrijf een plek waar je nog nooit bent geweest, maar waar je een vreemde band mee voelt.",
    "Wat is een simpel genot waar je nooit genoeg van krijgt?",
    "Als je een dag met een historisch figuur zou kunnen doorbrengen, wie zou het zijn en waar zouden jullie het over hebben?",
    "Wat is een eigenschap die je in anderen bewondert en die je graag in jezelf zou willen ontwikkelen?",
    "Deel een herinnering aan een moment waarop je je volledig in je element voelde.",
    "Welk boek, welke film of welk kunstwerk heeft je onlangs diep geraakt?",
    "Als je een nieuwe feestdag zou kunnen creëren, wat zou die vieren en wat zouden de tradities zijn?",
    "Wat is iets, groot of klein, waar je op dit moment naar uitkijkt?",
    "Beschrijf jouw idee van een perfecte, gezellige avond.",
    "Wat is een kleine daad van vriendelijkheid die je hebt gezien of ervaren die je hart heeft verwarmd?",
    "Als je gevoelens een landschap waren, hoe zou het er dan op dit moment uitzien?",
    "Wat is een doel waar je naartoe werkt waar je trots op bent?",
)

# Firestore collections
DAILY_COLLECTION = "dailyMoments"
CHAT_SUBCOLLECTION = "chat"

MAX_ANSWER_LENGTH = 1000
MAX_MESSAGE_LENGTH = 500
MAX_QUESTION_LENGTH = 1000
MAX_USERS = 2

# Image processing
IMAGE_MAX_DIMENSION = 768
IMAGE_QUALITY = 80
IMAGE_OUTPUT_FORMAT = "WEBP"
IMAGE_FALLBACK_FORMAT = "JPEG"

SEARCH_TERMS: tuple[str, ...] = (
    "fantasy landscape magical forest",
    "ethereal mystical serene nature",
    "magical garden enchanted fairies",
    "dreamy fantasy art josephine wall",
    "mystical landscape peaceful elves",
    "enchanted forest fairy tale horses",
    "magical atmosphere serene cat",
    "fantasy world peaceful black labrador",
    "ethereal landscape fantasy art",
    "magical forest enchanted atmosphere",
    "dreamlike fantasy mystical garden",
    "serene fantasy art magical landscape",
    "enchanted mystical ethereal forest",
    "fairy tale fantasy magical dream",
    "mythical creatures nature peaceful",
    "josephine wall style fantasy art",
    "art nouveau magical landscape",
    "pre raphaelite fantasy serene",
    "fairy elves mystical forest",
    "magical horses enchanted meadow",
    "black labrador fantasy peaceful",
    "cat mystical serene garden",
    "mythical female creatures ethereal",
    "fairy tale magical atmosphere",
    "enchanted nature fantasy art",
)

RELEVANCE_KEYWORDS: tuple[str, ...] = (
    "fantasy", "magical", "magic", "ethereal", "mystical", "enchanted",
    "fairy", "dream", "surreal", "forest", "woods", "garden", "landscape",
    "nature", "peaceful", "serene", "calm", "tranquil", "beautiful",
    "artistic", "abstract", "water", "sky", "mountain", "flower", "tree",
    "light", "shadow", "mystery", "wonder",
)

CURATED_IMAGES: tuple[str, ...] = (
    "https://images.pexels.com/photos/2386144/pexels-photo-2386144.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386154/pexels-photo-2386154.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386226/pexels-photo-2386226.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386227/pexels-photo-2386227.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386228/pexels-photo-2386228.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386229/pexels-photo-2386229.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386230/pexels-photo-2386230.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386231/pexels-photo-2386231.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386232/pexels-photo-2386232.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386233/pexels-photo-2386233.jpeg?w=800&h=800&fit=crop",
    "https://images.pexels.com/photos/2386234/pexels-photo-2386234.jpeg?w=800&h=800&fit=crop",
    "https://images.unsplash.com/photo-1518709268805-4e9042af2176?w=800&h=800&fit=crop",
    "https://images.unsplash.com/photo-1506905925346-21bda4d32df4?w=800&h=800&fit=crop",
    "https://images.unsplash.com/photo-1441974231531-c6227db76b6e?w=800&h=800&fit=crop",
    "https://images.unsplash.com/photo-1447752875215-b2761acb3c5d?w=800&h=800&fit=crop",
    "https://images.unsplash.com/photo-1501594907352-04cda38ebc29?w=800&h=800&fit=crop",
    "https://images.unsplash.com/photo-1518837695005-2083093ee35b?w=800&h=800&fit=crop",
)

LAST_RESORT_IMAGE_URL = (
    "https://storage.googleapis.com/maker-studio-project-media-prod/"
    "1f79564f-a212-416b-a25e-046603a15231/images/"
    "2202650c-e63d-4c3e-8c83-7c089f929367.jpeg"
)

# Prompt for the generated-image step of the supply chain.
IMAGE_GENERATION_PROMPT = (
    "A breathtakingly beautiful and serene fantasy digital painting. The style must be "
    "ethereal and magical, deeply inspired by the intricate detail and saturated colors "
    "of Josephine Wall, the classic fairy-tale linework of Arthur Rackham, and the "
    "romanticism of the Pre-Raphaelite movement. Incorporate the flowing, organic forms "
    "of Art Nouveau in the composition. The mood should be one of wonder, peace, and "
    "enchantment. The scene should be filled with soft light, mystical elements, and a "
    "sense of calm. Avoid any dark, scary, or negative imagery. Focus on beauty and "
    "tranquility."
)

# User-facing messages (the app is Dutch-language).
ERROR_MESSAGES = MappingProxyType(
    {
        "UNAUTHORIZED_EMAIL": "E-mailadres niet toegestaan",
        "INVALID_CREDENTIALS": "E-mail of wachtwoord onjuist",
        "GENERIC_LOGIN_ERROR": "Inloggen mislukt",
        "DAILY_CONTENT_FETCH_FAILED": "Kon dagelijkse inhoud niet ophalen",
        "DAILY_CONTENT_CREATE_FAILED": "Dagelijks moment aanmaken mislukt.",
        "DAILY_CONTENT_CREATE_TIMEOUT": (
            "Het duurt te lang om een nieuw moment te creëren. "
            "Probeer het opnieuw."
        ),
        "IMAGE_GENERATION_FAILED": "Kon afbeelding niet genereren",
        "IMAGE_PROVIDER_UNAVAILABLE": "Afbeeldingsbron niet beschikbaar",
        "SAVE_FAILED": "Opslaan mislukt",
        "SEND_FAILED": "Versturen mislukt",
        "REALTIME_CONNECTION_LOST": (
            "Er is een probleem met de real-time verbinding. "
            "Probeer de pagina te vernieuwen."
        ),
        "RECORD_ALREADY_EXISTS": "Het moment voor deze dag bestaat al",
        "INVALID_INPUT": "Ongeldige invoer",
        "NO_RECORD_YET": "Er is nog geen moment voor vandaag",
        "CHAT_NOT_ALLOWED": "Chatten kan alleen over gisteren",
        "QUESTION_CHOICE_CLOSED": "Je kunt de vraag nu niet kiezen",
        "DATE_NOT_AVAILABLE": "Er is geen moment voor deze datum",
        "NOT_FOUND": "Niet gevonden",
        "SESSION_EXPIRED": "Sessie verlopen, log opnieuw in",
    }
)

SUCCESS_MESSAGES = MappingProxyType(
    {
        "ANSWER_SAVED": "Je antwoord is opgeslagen ✨",
        "QUESTION_SET": "De vraag voor vandaag is ingesteld!",
    }
)
