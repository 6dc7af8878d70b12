from conftest import SCALAR_HEADER, make_scalar_text, scalar_row
from hydro_format import SCALAR, VECTOR, is_data_line, parse_scalar_line
from hydro_index import build_time_index, extract_time_step, nearest_time


def test_scenario_index(scenario_text):
    index = build_time_index(scenario_text)
    assert index.times == [0.0, 1.0]
    assert index.ranges == {0.0: (1, 2), 1.0: (3, 3)}

    records = extract_time_step(scenario_text, index, 0.0)
    assert len(records) == 2
    assert [r["x"] for r in records] == [1.0, 2.0]
    assert records[1]["pressure"] == 1.1e8


def test_times_sorted_and_unique_regardless_of_file_order():
    text = make_scalar_text(times=(2.0, 0.5, 1.0))
    index = build_time_index(text)
    assert index.times == [0.5, 1.0, 2.0]
    assert len(index) == 3


def test_ranges_cover_exactly_the_data_lines():
    text = make_scalar_text(times=(0.0, 1.0, 2.0, 3.0)) + "\n\n"
    index = build_time_index(text)
    covered = sum(end - start + 1 for start, end in index.ranges.values())
    n_data = sum(1 for line in text.split("\n") if is_data_line(line))
    assert covered == n_data == 16


def test_extraction_partitions_valid_lines():
    text = make_scalar_text(times=(0.0, 1.0, 2.0))
    index = build_time_index(text)
    extracted = [r for t in index.times for r in extract_time_step(text, index, t)]
    expected = [parse_scalar_line(line) for line in text.split("\n")
                if is_data_line(line) and parse_scalar_line(line)]
    assert sorted(map(tuple, (r.values() for r in extracted))) == \
        sorted(map(tuple, (r.values() for r in expected)))
    assert len(extracted) == len(expected) == 12


def test_repeated_block_boundary_headers_are_skipped():
    text = (SCALAR_HEADER + scalar_row(1, 0, 0.0, 10) + scalar_row(2, 0, 0.0, 20)
            + SCALAR_HEADER + scalar_row(1, 0, 1.0, 30) + scalar_row(2, 0, 1.0, 40))
    index = build_time_index(text)
    assert index.ranges == {0.0: (2, 3), 1.0: (6, 7)}
    assert [r["temperature"] for r in extract_time_step(text, index, 1.0)] == [30, 40]


def test_non_contiguous_time_last_write_wins():
    text = (SCALAR_HEADER + scalar_row(1, 0, 0.0, 10)
            + scalar_row(1, 0, 1.0, 20)
            + scalar_row(2, 0, 0.0, 30))
    index = build_time_index(text)
    assert index.times == [0.0, 1.0]
    assert index.ranges[0.0] == (4, 4)
    assert [r["temperature"] for r in extract_time_step(text, index, 0.0)] == [30]


def test_unparseable_rows_do_not_split_ranges():
    text = (SCALAR_HEADER + scalar_row(1, 0, 0.0, 10)
            + "1 2 3\n"
            + scalar_row(2, 0, 0.0, 20))
    index = build_time_index(text)
    assert index.ranges == {0.0: (2, 4)}
    assert len(extract_time_step(text, index, 0.0)) == 2


def test_extract_unknown_time_is_empty(scenario_text):
    index = build_time_index(scenario_text)
    assert extract_time_step(scenario_text, index, 0.5) == []


def test_extract_accepts_split_lines(scenario_text):
    index = build_time_index(scenario_text)
    lines = scenario_text.split("\n")
    assert extract_time_step(lines, index, 1.0) == extract_time_step(scenario_text, index, 1.0)


def test_vector_index(vector_text):
    index = build_time_index(vector_text, VECTOR)
    assert index.times == [0.0, 5.0, 10.0]
    rec = extract_time_step(vector_text, index, 5.0, VECTOR)[0]
    assert rec["water_u"] == 10.0 and rec["steam_v"] == 100.0


def test_scalar_width_rows_are_not_vector_rows():
    index = build_time_index(make_scalar_text(), VECTOR)
    assert index.times == []


def test_empty_text():
    index = build_time_index("")
    assert index.times == [] and index.ranges == {}


def test_nearest_time():
    assert nearest_time([0.0, 5.0, 10.0], 7.0) == 5.0
    assert nearest_time([0.0, 5.0, 10.0], 8.0) == 10.0
    assert nearest_time([0.0, 5.0, 10.0], 5.0) == 5.0
    assert nearest_time([0.0, 10.0], 5.0) == 0.0
    assert nearest_time([], 1.0) is None


def test_to_dict(scenario_text):
    assert build_time_index(scenario_text, SCALAR).to_dict() == {
        "times": [0.0, 1.0],
        "ranges": [[0.0, 1, 2], [1.0, 3, 3]],
    }
