import json

import pytest

from conftest import GREEN, RED, WHITE, FakeEngine, make_png
from img_similarity.embedding.main import collect_image_paths, main


@pytest.fixture
def image_dir(tmp_path):
    (tmp_path / "a_red.png").write_bytes(make_png(RED))
    (tmp_path / "b_green.png").write_bytes(make_png(GREEN))
    (tmp_path / "c_white.png").write_bytes(make_png(WHITE))
    (tmp_path / "notes.txt").write_text("not an image")
    return tmp_path


def test_collect_image_paths_expands_directories(image_dir):
    paths = collect_image_paths([image_dir])
    assert [p.name for p in paths] == ["a_red.png", "b_green.png", "c_white.png"]


def test_collect_image_paths_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        collect_image_paths([tmp_path / "missing.png"])


def test_compare_prints_score(image_dir, fake_engine, capsys):
    code = main(["compare", str(image_dir / "a_red.png"), str(image_dir / "c_white.png")], engine=fake_engine)
    assert code == 0
    assert float(capsys.readouterr().out.strip()) == pytest.approx(1.0)
    assert len(fake_engine.released) == 1


def test_group_writes_json(image_dir, fake_engine, tmp_path):
    output = tmp_path / "out" / "groups.json"
    code = main(["group", str(image_dir), "--threshold", "0.95", "--output", str(output)], engine=fake_engine)

    assert code == 0
    data = json.loads(output.read_text())
    assert [p.rsplit("/", 1)[-1] for p in data["files"]] == ["a_red.png", "b_green.png", "c_white.png"]
    assert data["groups"] == [[0, 2]]
    assert [(p["index_a"], p["index_b"]) for p in data["pairs"]] == [(0, 2)]


def test_group_prints_json_to_stdout(image_dir, fake_engine, capsys):
    code = main(["group", str(image_dir / "a_red.png"), str(image_dir / "b_green.png")], engine=fake_engine)
    assert code == 0
    assert json.loads(capsys.readouterr().out)["groups"] == []


def test_bad_image_exits_with_error(tmp_path, fake_engine):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"garbage")
    good = tmp_path / "good.png"
    good.write_bytes(make_png(RED))
    assert main(["compare", str(good), str(bad)], engine=fake_engine) == 1


def test_missing_model_exits_with_error(tmp_path):
    code = main(["--model-path", str(tmp_path / "none.onnx"), "compare", "a.png", "b.png"])
    assert code == 1


def test_unsupported_channel_count_exits_with_error(image_dir):
    engine = FakeEngine(input_shape=(1, 2, 2, 2))
    code = main(["compare", str(image_dir / "a_red.png"), str(image_dir / "c_white.png")], engine=engine)
    assert code == 1
    assert len(engine.released) == 1
