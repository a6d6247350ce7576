"""
case_data.py
============
Narrative content for the bundled sample case, "The Blackwood Study".

Centralising story data here means a fresh database always has one playable
case, and the whole mystery (locations, trigger objects, disclosure records,
answer) can be swapped without touching any engine code. Further cases are
loaded from JSON files in the same ``Case`` shape (see case_repository.py).

To author a new case:
    1. Give every Location a list of interactables with keyword synonyms.
    2. Key every evidence / suspect-info record to the interactable that
       reveals it (``trigger_object_id``). Interactables with no records are
       red herrings.
    3. Use ``unlocks_location_id`` on a record to open a new location.
    4. Point ``correct_accusation`` at one suspect and one evidence id.
"""

from __future__ import annotations

from typing import List

from models import (
    Case,
    CorrectAccusation,
    DisclosureRecord,
    Interactable,
    Location,
    SuspectProfile,
    Victim,
)


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------

_LOCATIONS: List[Location] = [
    Location(
        id="study",
        name="Victor's Study",
        scene_description=(
            "Small wood-panelled room. Desk covered in papers, a cold fireplace, "
            "a tall window overlooking the garden. Smells like old cigars and "
            "something metallic."
        ),
        keywords=["study", "office"],
        interactables=[
            Interactable(id="desk", keywords=["desk", "papers", "masa"]),
            Interactable(id="fireplace", keywords=["fireplace", "hearth", "ashes", "şömine"]),
            Interactable(id="window", keywords=["window", "pencere"]),
            Interactable(id="bookshelf", keywords=["bookshelf", "shelf", "books", "kitaplık"]),
        ],
    ),
    Location(
        id="library",
        name="The Library",
        scene_description=(
            "Two storeys of books, a rolling ladder and a reading chair still "
            "warm from somebody. One lamp is on."
        ),
        keywords=["library", "kütüphane"],
        interactables=[
            Interactable(id="reading_chair", keywords=["chair", "armchair", "koltuk"]),
            Interactable(id="ladder", keywords=["ladder", "merdiven"]),
        ],
    ),
    Location(
        id="garden",
        name="The Garden",
        scene_description=(
            "Wet lawn, a gravel path to the gate and a flowerbed right under "
            "the study window. Rain stopped about an hour ago."
        ),
        keywords=["garden", "yard", "bahçe"],
        interactables=[
            Interactable(id="flowerbed", keywords=["flowerbed", "flowers", "mud", "çiçek"]),
            Interactable(id="gate", keywords=["gate", "kapı"]),
        ],
    ),
]


# ---------------------------------------------------------------------------
# Disclosure records
# ---------------------------------------------------------------------------

_EVIDENCE: List[DisclosureRecord] = [
    DisclosureRecord(
        id="clue_letter",
        name="Unsigned Letter",
        description=(
            "An unsigned letter on the desk: 'Change the will and you will not "
            "see the morning.' The ink is smudged by a left hand."
        ),
        trigger_object_id="desk",
    ),
    DisclosureRecord(
        id="burnt_page",
        name="Burnt Will Page",
        description=(
            "Half a page of Victor's new will, pulled from the ashes. The "
            "surviving line removes Lydia Blackwood as heir."
        ),
        trigger_object_id="fireplace",
    ),
    DisclosureRecord(
        id="muddy_footprint",
        name="Muddy Footprint",
        description=(
            "A small muddy footprint on the sill, heel pointing inward. "
            "Someone came in from the garden, not out."
        ),
        trigger_object_id="window",
        unlocks_location_id="garden",
    ),
    DisclosureRecord(
        id="brass_candlestick",
        name="Brass Candlestick",
        description=(
            "A brass candlestick pushed under the cushion of the reading chair. "
            "The base is wiped clean but the felt underneath is stained dark."
        ),
        trigger_object_id="reading_chair",
    ),
    DisclosureRecord(
        id="torn_glove",
        name="Torn Evening Glove",
        description=(
            "A lady's evening glove, left-handed, caught on the gate latch. "
            "Embroidered initials: L.B."
        ),
        trigger_object_id="gate",
    ),
]

_SUSPECT_INFO: List[DisclosureRecord] = [
    DisclosureRecord(
        id="lydia_library_key",
        name="Lydia's Library Key",
        description=(
            "Tucked inside a hollow book: the library's spare key, tagged in "
            "Lydia's handwriting. Only family members carry one."
        ),
        trigger_object_id="bookshelf",
        suspect_id="lydia",
        unlocks_location_id="library",
    ),
    DisclosureRecord(
        id="marcus_bag_tag",
        name="Doctor's Bag Tag",
        description=(
            "A luggage tag from Dr. Marcus Vale's medical bag, trampled into "
            "the flowerbed. He said he left at 22:45 by the front door."
        ),
        trigger_object_id="flowerbed",
        suspect_id="marcus",
    ),
]


# ---------------------------------------------------------------------------
# Case file
# ---------------------------------------------------------------------------

SAMPLE_CASE: Case = Case(
    id="blackwood-study",
    title="The Blackwood Study",
    synopsis=(
        "Victor Hale, patriarch of Blackwood Mansion, was found dead in his "
        "study an hour after announcing changes to his will."
    ),
    case_number="CASE-021",
    victims=[
        Victim(
            name="Victor Hale",
            age=67,
            occupation="Shipping magnate",
            description="Found slumped beside his desk, blunt force trauma to the head.",
        ),
    ],
    suspects=[
        SuspectProfile(
            id="lydia",
            name="Lydia Blackwood",
            trait="Composed, evasive, left-handed",
            physical_description="Tall, dark evening dress, one glove missing",
            relation_to_victim="Niece and heir",
        ),
        SuspectProfile(
            id="marcus",
            name="Dr. Marcus Vale",
            trait="Dry humour, deflects with jargon",
            physical_description="Grey suit, mud on his trouser cuffs",
            relation_to_victim="Family doctor",
        ),
        SuspectProfile(
            id="eleanor",
            name="Eleanor Wright",
            trait="Anxious, loyal, easily flustered",
            physical_description="Housekeeper's apron, red eyes",
            relation_to_victim="Housekeeper for twenty years",
        ),
    ],
    start_location_id="study",
    locations=_LOCATIONS,
    evidence_truth=_EVIDENCE,
    suspect_truth=_SUSPECT_INFO,
    correct_accusation=CorrectAccusation(suspect_id="lydia", evidence_id="brass_candlestick"),
)

SAMPLE_CASES: List[Case] = [SAMPLE_CASE]
"""
Cases seeded into an empty database at startup.

Keep ids stable between releases: sessions reference them.
"""
