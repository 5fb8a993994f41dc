import pytest

from hwsensors.utils import (
    PowerState,
    find_files,
    find_limits,
    get_full_hwmon_file_path,
    get_permit_set,
    load_variant,
    open_and_read,
    parse_power_state,
    read_file,
    split_file_name,
)


def test_open_and_read_first_line(tmp_path):
    path = tmp_path / "f"
    path.write_text("abc\ndef\n")
    assert open_and_read(path) == "abc"


def test_open_and_read_missing(tmp_path):
    assert open_and_read(tmp_path / "missing") is None


def test_hwmon_path_empty_permit(tmp_path):
    result = get_full_hwmon_file_path(str(tmp_path), "temp1", set())
    assert result == f"{tmp_path}/temp1_input"


def test_hwmon_path_label_permitted(tmp_path):
    (tmp_path / "temp2_label").write_text("Die\n")
    assert get_full_hwmon_file_path(str(tmp_path), "temp2", {"Die"}) == f"{tmp_path}/temp2_input"
    assert get_full_hwmon_file_path(str(tmp_path), "temp2", {"temp2"}) is None


def test_hwmon_path_base_name_without_label(tmp_path):
    assert get_full_hwmon_file_path(str(tmp_path), "temp3", {"temp3"}) == f"{tmp_path}/temp3_input"
    assert get_full_hwmon_file_path(str(tmp_path), "temp3", {"other"}) is None


def test_permit_set_from_labels():
    assert get_permit_set({"Labels": ["a", "b", "a"]}) == {"a", "b"}


@pytest.mark.parametrize("config", [{}, {"Labels": "a"}, {"Labels": 3}, {"Name": ["x"]}])
def test_permit_set_empty_when_absent_or_wrong(config):
    assert get_permit_set(config) == set()


def test_find_files_depth(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "b").mkdir()
    (tmp_path / "temp1_input").write_text("1")
    (tmp_path / "a" / "temp2_input").write_text("2")
    (tmp_path / "a" / "b" / "temp3_input").write_text("3")
    (tmp_path / "a" / "fan1_input").write_text("4")
    found = find_files(tmp_path, r"temp\d+_input$")
    assert found == [tmp_path / "a" / "temp2_input", tmp_path / "temp1_input"]
    deep = find_files(tmp_path, r"temp\d+_input$", symlink_depth=2)
    assert tmp_path / "a" / "b" / "temp3_input" in deep
    assert len(deep) == 3
    shallow = find_files(tmp_path, r"temp\d+_input$", symlink_depth=0)
    assert shallow == [tmp_path / "temp1_input"]


def test_find_files_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_files(tmp_path / "nope", "x")


def test_split_file_name():
    assert split_file_name("/sys/class/hwmon/hwmon0/temp1_input") == ("temp", "1", "input")
    assert split_file_name("in12_average") == ("in", "12", "average")


@pytest.mark.parametrize("name", ["temp_input", "1temp_input", "temp1", "", "/sys/dir/"])
def test_split_file_name_invalid(name):
    assert split_file_name(name) is None


def test_split_file_name_empty_item():
    assert split_file_name("temp1_") == ("temp", "1", "")


def test_read_file_scaled(tmp_path):
    path = tmp_path / "temp1_max"
    path.write_text("28000\n")
    assert read_file(path, 1) == 28000.0
    assert read_file(path, 2) == read_file(path, 1) / 2


def test_read_file_leading_number(tmp_path):
    path = tmp_path / "v"
    path.write_text("  12xyz\n")
    assert read_file(path, 1.0) == 12.0


def test_read_file_invalid(tmp_path):
    path = tmp_path / "v"
    path.write_text("abc\n")
    assert read_file(path, 1.0) is None
    assert read_file(tmp_path / "missing", 1.0) is None


def test_find_limits_replaced():
    assert find_limits((0.0, 255.0), {"MinReading": 5, "MaxReading": 100}) == (5.0, 100.0)


def test_find_limits_partial_and_none():
    assert find_limits((0.0, 255.0), {"MaxReading": 100}) == (0.0, 100.0)
    assert find_limits((1.0, 2.0), None) == (1.0, 2.0)


def test_load_variant_kinds():
    data = {"Bus": 7, "Name": "fan", "Scale": 2.5}
    assert load_variant(data, "Bus", int) == 7
    assert load_variant(data, "Name", str) == "fan"
    assert load_variant(data, "Scale", float) == 2.5
    assert load_variant(data, "Bus", float) == 7.0


def test_load_variant_missing_key():
    with pytest.raises(ValueError):
        load_variant({}, "Bus", int)


def test_load_variant_bad_value():
    with pytest.raises(ValueError):
        load_variant({"Bus": "x"}, "Bus", float)


def test_load_variant_bad_kind():
    with pytest.raises(TypeError):
        load_variant({"Bus": 1}, "Bus", list)


@pytest.mark.parametrize(
    "text, expected",
    [("On", PowerState.ON), ("BiosPost", PowerState.BIOS_POST), ("Always", PowerState.ALWAYS)],
)
def test_parse_power_state(text, expected):
    assert parse_power_state(text, PowerState.ALWAYS) == expected


def test_parse_power_state_unknown_keeps_default():
    assert parse_power_state("on", PowerState.BIOS_POST) == PowerState.BIOS_POST
    assert parse_power_state("") == PowerState.ALWAYS