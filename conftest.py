import pytest

from taleweave.models import ItemSpec, Npc, Scene, World
from taleweave.sessions import SessionManager
from taleweave.storage import Storage


class StubLLM:
    """Scripted model for tests.

    `script` maps a stage ("narrator", "mission_designer") to the answers it
    gives, one per call. An answer is a string, or a list of chunks for
    `stream()`. An exception in place of an answer or chunk is raised there.
    Calling a stage with nothing left scripted fails the test.
    """

    def __init__(self, script: dict[str, list]) -> None:
        self._pending = {stage: list(answers) for stage, answers in script.items()}
        self.calls: list[tuple[str, str]] = []

    def _pop(self, stage: str, prompt: str):
        self.calls.append((stage, prompt))
        if not self._pending.get(stage):
            raise AssertionError(f"StubLLM: no scripted answer left for {stage!r}; calls: {self.calls}")
        return self._pending[stage].pop(0)

    async def __call__(self, stage: str, prompt: str) -> str:
        answer = self._pop(stage, prompt)
        if isinstance(answer, BaseException):
            raise answer
        return "".join(answer) if isinstance(answer, list) else answer

    async def stream(self, stage: str, prompt: str):
        answer = self._pop(stage, prompt)
        for chunk in answer if isinstance(answer, list) else [answer]:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk

    def assert_exhausted(self) -> None:
        unused = {stage: left for stage, left in self._pending.items() if left}
        if unused:
            raise AssertionError(f"StubLLM: scripted answers never used: {unused}")


@pytest.fixture
def stub_llm():
    """The StubLLM class, for tests that script model output."""
    return StubLLM


@pytest.fixture
def store(tmp_path) -> Storage:
    return Storage(tmp_path)


@pytest.fixture
def world() -> World:
    return World(
        title="The Sunken Keep",
        background="A flooded fortress on the edge of the marsh.",
        npcs=[
            Npc(id="mira", name="Mira", description="Ferrywoman who knows the tides."),
            Npc(id="osric", name="Osric", description="Last knight of the keep."),
        ],
        scenes=[
            Scene(id="gatehouse", name="Gatehouse", description="Water laps at the portcullis.",
                  exits={"in": "great_hall"}, npcs=["osric"]),
            Scene(id="great_hall", name="Great Hall", description="Banners rot above black water.",
                  exits={"out": "gatehouse"}),
            Scene(id="crypt", name="Crypt", description="Sealed since the flood."),
        ],
        items=[ItemSpec(id="rusty_key", name="Rusty Key")],
        start_scene="gatehouse",
        initial_stats={"strength": 3, "wits": 4},
        initial_items=[ItemSpec(id="lantern", name="Lantern")],
        initial_currency={"gold": 5},
    )


@pytest.fixture
def manager(store) -> SessionManager:
    return SessionManager(store)
