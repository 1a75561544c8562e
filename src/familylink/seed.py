"""Demo family: three generations of the Smith and Johnson families, with a few memories."""

from __future__ import annotations

import logging
from datetime import date

from familylink.api.service import FamilyTreeService
from familylink.core.models import Family, PrivacyTier, SensitiveField

logger = logging.getLogger(__name__)

DEMO_SLUG = "the-demo-family"

FAMILY_ONLY = {field: PrivacyTier.FAMILY for field in SensitiveField}

# key, given, family, gender, birth, death, notes
DEMO_PERSONS = [
    ("robert", "Robert", "Smith", "male", date(1940, 5, 15), date(2020, 3, 10),
     "Loved gardening and telling stories to his grandchildren."),
    ("margaret", "Margaret", "Smith", "female", date(1942, 8, 22), None,
     "Still active in the community, volunteers at the local library."),
    ("william", "William", "Johnson", "male", date(1938, 12, 3), date(2018, 11, 15),
     "Served in the Navy, loved fishing."),
    ("eleanor", "Eleanor", "Johnson", "female", date(1941, 4, 18), None,
     "Retired teacher, still tutors children in reading."),
    ("michael", "Michael", "Smith", "male", date(1965, 7, 12), None,
     "Software engineer, enjoys hiking and photography."),
    ("sarah", "Sarah", "Smith", "female", date(1968, 9, 25), None,
     "Graphic designer, passionate about art and travel."),
    ("david", "David", "Johnson", "male", date(1963, 1, 14), None,
     "Doctor, volunteers at free clinics."),
    ("emma", "Emma", "Smith", "female", date(1995, 3, 8), None,
     "College student studying environmental science."),
    ("james", "James", "Smith", "male", date(1998, 11, 20), None,
     "High school senior, interested in robotics."),
    ("sophie", "Sophie", "Johnson", "female", date(1992, 6, 30), None,
     "Marketing professional, loves cooking and yoga."),
]

DEMO_PARENT_CHILD = [
    ("robert", "michael"),
    ("margaret", "michael"),
    ("william", "sarah"),
    ("eleanor", "sarah"),
    ("michael", "emma"),
    ("sarah", "emma"),
    ("michael", "james"),
    ("sarah", "james"),
    ("william", "david"),
    ("eleanor", "david"),
    ("david", "sophie"),
]

DEMO_SPOUSES = [
    ("robert", "margaret", date(1960, 6, 15)),
    ("william", "eleanor", date(1962, 9, 8)),
    ("michael", "sarah", date(1990, 5, 20)),
]


# title, body, tagged keys
DEMO_MEMORIES = [
    ("Grandpa Robert's Garden",
     "Remembering Grandpa Robert's beautiful rose garden. He spent hours tending to his "
     "flowers and always had the best stories to tell while we helped him water the plants.",
     ["robert"]),
    ("Family Reunion 2019",
     "What a wonderful day! Everyone gathered at Grandma Margaret's house for our annual "
     "family reunion. The kids played in the backyard while the adults caught up on all the news.",
     ["margaret", "emma", "james"]),
    ("Emma's Graduation",
     "So proud of Emma graduating with honors in Environmental Science! She's following her "
     "passion for protecting our planet. Can't wait to see what she accomplishes next.",
     ["emma"]),
]


def seed_demo_family(service: FamilyTreeService) -> Family:
    """
    Create the demo family unless it already exists.

    Returns the (new or existing) demo family.
    """
    existing = service.store.get_family_by_slug(DEMO_SLUG)
    if existing:
        logger.info("Demo family already present: %s", existing.id)
        return existing

    family = service.create_family(
        name="The Demo Family",
        slug=DEMO_SLUG,
        description="A sample family tree to demonstrate FamilyLink features",
    )

    ids: dict[str, str] = {}
    for key, given, surname, gender, born, died, notes in DEMO_PERSONS:
        person = service.create_person(
            family.id,
            given_name=given,
            family_name=surname,
            gender=gender,
            birth_date=born,
            death_date=died,
            notes=notes,
            privacy=FAMILY_ONLY,
        )
        ids[key] = person.id

    for parent, child in DEMO_PARENT_CHILD:
        service.propose_parent_child(ids[parent], ids[child]).raise_for_rejection()

    for a, b, start in DEMO_SPOUSES:
        service.propose_spouse_link(ids[a], ids[b], start_date=start).raise_for_rejection()

    for title, body, tagged in DEMO_MEMORIES:
        service.create_memory(
            family.id,
            title=title,
            body=body,
            tagged_person_ids=[ids[key] for key in tagged],
        )

    logger.info(
        "Seeded demo family %s with %d persons and %d memories",
        family.id, len(ids), len(DEMO_MEMORIES),
    )
    return family
