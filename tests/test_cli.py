from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from conftest import FailingLLMClient
from docchat import cli
from docchat.services.rag.service import RagService

MakeService = Callable[..., RagService]


def _reader(lines: list[str]) -> Callable[[str], str]:
    remaining: Iterator[str] = iter(lines)

    def read(prompt: str) -> str:
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError from None

    return read


def test_question_loop_answers_until_exit(sky_corpus: Path, make_service: MakeService) -> None:
    service = make_service(sky_corpus)
    service.initialize()
    output: list[str] = []

    answered = cli.question_loop(
        service,
        read=_reader(["What color is the sky?", "", "exit", "never asked"]),
        write=output.append,
    )

    assert answered == 1
    joined = "\n".join(output)
    assert "mocked answer" in joined
    assert "notes.txt" in joined
    assert "Exiting the loop" in output[-1]


def test_question_loop_reports_errors_and_continues(
    sky_corpus: Path,
    make_service: MakeService,
) -> None:
    service = make_service(sky_corpus, llm_client=FailingLLMClient())
    service.initialize()
    output: list[str] = []

    answered = cli.question_loop(
        service,
        read=_reader(["first?", "second?"]),
        write=output.append,
    )

    assert answered == 0
    assert sum("An error occurred" in line for line in output) == 2


def test_main_exits_when_corpus_is_unreadable(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(
        "sys.argv",
        ["docchat", "--corpus-dir", str(tmp_path / "missing")],
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main()

    assert excinfo.value.code == 1
    assert "[docchat] failed" in capsys.readouterr().err
