from research_relay.agent.tools import CITATION_INSTRUCTIONS
from research_relay.config import FORBIDDEN_ENGINE_FLAGS, EngineConfig
from research_relay.engine.orchestrator import SAFETY_PREAMBLE, ExecutionOrchestrator, build_prompt
from research_relay.engine.output import extract_files_referenced


def test_preamble_states_read_only_constraints() -> None:
    assert "Read-only analysis ONLY" in SAFETY_PREAMBLE
    assert "Do NOT suggest code changes" in SAFETY_PREAMBLE
    assert "## Files Referenced" in SAFETY_PREAMBLE


def test_user_request_follows_preamble() -> None:
    prompt = build_prompt("What does @src/app.py do?")

    assert prompt == f"{SAFETY_PREAMBLE}\n\n---\n\nUSER REQUEST:\nWhat does @src/app.py do?"


def test_default_invocation_never_grants_write_access() -> None:
    orchestrator = ExecutionOrchestrator(runner=None, config=EngineConfig())

    for model in ("gemini-2.5-pro", None):
        args = orchestrator.build_args(build_prompt("q"), model)
        assert not FORBIDDEN_ENGINE_FLAGS.intersection(args[:-1])
        assert "--approval-mode" in args


def test_citation_section_is_parseable() -> None:
    answer = "Summary.\n\n## Files Referenced\n* src/a.py\n* src/b.py\n\n## Notes\nnone"

    assert "## Files Referenced" in CITATION_INSTRUCTIONS["paths_only"]
    assert extract_files_referenced(answer) == ["src/a.py", "src/b.py"]
