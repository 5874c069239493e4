"""Create demo world templates for development/testing."""

import logging

from taleweave.models import ItemSpec, Npc, Scene, World, WorldTemplate
from taleweave.storage import Storage

logger = logging.getLogger(__name__)

DRAGONS_HOLLOW = WorldTemplate(
    slug="dragons-hollow",
    title="Dragon's Hollow",
    description="Deep in the mountain pass lies a village terrorized by a young dragon. "
    "The townsfolk need a hero, but things are not as simple as they seem.",
    style="Terse, atmospheric prose. Let the characters talk.",
    world=World(
        title="Dragon's Hollow",
        background="Half the village lies in charred ruins. The dragon Fafnir is young, "
        "hungry and, according to the healer, wounded.",
        npcs=[
            Npc(id="gareth", name="Gareth", description="Captain of the village watch. Loyal, grumpy."),
            Npc(id="elena", name="Elena", description="The village healer. Curious about the dragon."),
            Npc(id="thrak", name="Thrak", description="A half-orc mercenary who trusts no one."),
        ],
        scenes=[
            Scene(id="village_square", name="Village Square",
                  description="A scorched well, a notice board, shuttered windows.",
                  exits={"north": "mountain_path", "east": "healers_hut"},
                  npcs=["gareth"]),
            Scene(id="healers_hut", name="Healer's Hut",
                  description="Herbs hang from the rafters. Something large was bandaged here.",
                  exits={"west": "village_square"},
                  npcs=["elena"]),
            Scene(id="mountain_path", name="Mountain Path",
                  description="Claw marks on the rocks lead up toward the cave.",
                  exits={"south": "village_square", "up": "dragon_cave"},
                  npcs=["thrak"]),
            Scene(id="dragon_cave", name="Dragon's Cave",
                  description="Heat, bones and a low rumbling breath."),
        ],
        items=[
            ItemSpec(id="healing_herbs", name="Healing Herbs"),
            ItemSpec(id="dragon_scale", name="Dragon Scale"),
            ItemSpec(id="iron_sword", name="Iron Sword"),
        ],
        start_scene="village_square",
        initial_stats={"strength": 5, "charisma": 5, "health": 20},
        initial_items=[ItemSpec(id="iron_sword", name="Iron Sword")],
        initial_currency={"gold": 10},
    ),
)

DEMO_TEMPLATES = [DRAGONS_HOLLOW]


def create_demo_data(store: Storage) -> None:
    """Write (or overwrite) the demo world templates."""
    for template in DEMO_TEMPLATES:
        store.save_template(template, overwrite=True)
        logger.info("Demo template written: %s", template.slug)
