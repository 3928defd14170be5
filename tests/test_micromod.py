import pytest

from modvis.micromod import (
    Micromod,
    ModuleError,
    calculate_mod_file_len,
    get_version,
)

SAMPLE = bytes([100] * 64 + [156] * 64)
RATE = 44100


def cell(row, channel, instrument=1, key=428, effect=0, param=0):
    return (row, channel, instrument, key, effect, param)


def build_module(cells=(), tag=b"M.K.", channels=4, title=b"test song",
                 name=b"lead", samples=SAMPLE, patterns=1):
    header = bytearray(1084)
    header[0:len(title)] = title
    header[20:20 + len(name)] = name
    words = len(samples) // 2
    header[42:44] = words.to_bytes(2, "big")
    header[44] = 0
    header[45] = 64
    header[46:48] = (0).to_bytes(2, "big")
    header[48:50] = words.to_bytes(2, "big")
    header[950] = patterns
    for index in range(patterns):
        header[952 + index] = index
    header[1080:1084] = tag
    pattern_data = bytearray(patterns * 64 * channels * 4)
    for row, channel, instrument, key, effect, param in cells:
        offset = (row * channels + channel) * 4
        pattern_data[offset] = (instrument & 0x10) | ((key >> 8) & 0xF)
        pattern_data[offset + 1] = key & 0xFF
        pattern_data[offset + 2] = ((instrument & 0xF) << 4) | (effect & 0xF)
        pattern_data[offset + 3] = param
    return bytes(header + pattern_data + samples)


def left(frames):
    return frames[0::2]


def right(frames):
    return frames[1::2]


def test_version_string():
    assert get_version().startswith("Micromod Protracker replay")


def test_file_length_matches_built_module():
    data = build_module()
    assert calculate_mod_file_len(data) == len(data)
    data6 = build_module(tag=b"6CHN", channels=6, patterns=2)
    assert calculate_mod_file_len(data6[:1084]) == len(data6)


@pytest.mark.parametrize("tag", [b"ABCD", b"20CH", b"0CHN"])
def test_unrecognised_module_raises(tag):
    data = build_module(tag=tag)
    with pytest.raises(ModuleError):
        calculate_mod_file_len(data)
    with pytest.raises(ModuleError):
        Micromod(data, RATE)


def test_short_header_raises():
    with pytest.raises(ModuleError):
        Micromod(build_module()[:1000], RATE)


def test_low_sampling_rate_raises():
    with pytest.raises(ValueError):
        Micromod(build_module(), 7999)


@pytest.mark.parametrize("tag,channels", [(b"M.K.", 4), (b"6CHN", 6), (b"12CH", 12)])
def test_channel_count(tag, channels):
    player = Micromod(build_module(tag=tag, channels=channels), RATE)
    assert player.mute_channel(-1) == channels


def test_strings():
    data = bytearray(build_module())
    data[25] = 0x7F
    player = Micromod(bytes(data), RATE)
    assert player.get_string(0) == "test song".ljust(20)
    assert player.get_string(1) == "lead ".ljust(22)
    assert player.get_string(40) == "test song".ljust(20)


def test_silent_module_renders_zeros():
    frames = Micromod(build_module(), RATE).get_audio(500)
    assert len(frames) == 1000
    assert set(frames) == {0}


def test_left_channel_note_only_on_left():
    player = Micromod(build_module([cell(0, 0)]), RATE)
    frames = player.get_audio(2000)
    assert set(right(frames)) == {0}
    magnitudes = {abs(v) for v in left(frames)}
    assert len(magnitudes) == 1
    assert 0 not in magnitudes


def test_right_channel_note_only_on_right():
    frames = Micromod(build_module([cell(0, 1)]), RATE).get_audio(1000)
    assert set(left(frames)) == {0}
    assert any(right(frames))


def test_panning_effect_ignored_on_four_channels():
    frames = Micromod(build_module([cell(0, 0, effect=0x8, param=64)]), RATE).get_audio(500)
    assert set(right(frames)) == {0}
    assert any(left(frames))


def test_panning_effect_on_eight_channels():
    data = build_module([cell(0, 0, effect=0x8, param=64)], tag=b"8CHN", channels=8)
    frames = Micromod(data, RATE).get_audio(500)
    left_magnitudes = {abs(v) for v in left(frames)}
    right_magnitudes = {abs(v) for v in right(frames)}
    assert len(left_magnitudes) == 1
    assert len(right_magnitudes) == 1
    (left_level,) = left_magnitudes
    (right_level,) = right_magnitudes
    assert 0 < left_level < right_level


def test_set_volume_halves_output():
    full = Micromod(build_module([cell(0, 0)]), RATE).get_audio(300)
    half = Micromod(build_module([cell(0, 0, effect=0xC, param=32)]), RATE).get_audio(300)
    assert [v * 2 for v in left(half)] == left(full)


def test_mute_and_unmute():
    player = Micromod(build_module([cell(0, 0)]), RATE)
    assert player.mute_channel(0) == 4
    assert set(player.get_audio(300)) == {0}
    player.mute_channel(-1)
    assert any(player.get_audio(300))


def test_zero_gain_is_silent_after_reposition():
    player = Micromod(build_module([cell(0, 0)]), RATE)
    player.set_gain(0)
    player.set_position(0)
    assert set(player.get_audio(300)) == {0}


def test_skip_matches_rendering():
    data = build_module([cell(0, 0), cell(5, 1, effect=0x4, param=0x48)])
    rendered = Micromod(data, RATE)
    skipped = Micromod(data, RATE)
    rendered.get_audio(5000)
    skipped.skip(5000)
    assert rendered.get_audio(400) == skipped.get_audio(400)


def test_set_position_restarts():
    data = build_module([cell(0, 0)])
    player = Micromod(data, RATE)
    player.get_audio(7000)
    player.set_position(0)
    assert player.get_audio(500) == Micromod(data, RATE).get_audio(500)


def test_song_duration():
    player = Micromod(build_module(), RATE)
    assert player.calculate_song_duration() == 338688


def test_song_duration_scales_with_rate():
    data = build_module()
    single = Micromod(data, RATE).calculate_song_duration()
    double = Micromod(data, RATE * 2).calculate_song_duration()
    assert double == 2 * single


def test_set_speed_halves_duration():
    default = Micromod(build_module(), RATE).calculate_song_duration()
    fast = Micromod(build_module([cell(0, 0, 0, 0, 0xF, 3)]), RATE).calculate_song_duration()
    assert fast * 2 == default


def test_pattern_break_ends_song_after_one_row():
    default = Micromod(build_module(), RATE).calculate_song_duration()
    short = Micromod(build_module([cell(0, 0, 0, 0, 0xD, 0)]), RATE).calculate_song_duration()
    assert short * 64 == default


def test_duration_leaves_playback_at_start():
    data = build_module([cell(0, 0)])
    player = Micromod(data, RATE)
    player.get_audio(3000)
    player.calculate_song_duration()
    assert player.get_audio(300) == Micromod(data, RATE).get_audio(300)


def test_channel_state():
    player = Micromod(build_module([cell(0, 0)]), RATE)
    assert player.channel_instrument(0) == 1
    assert player.channel_instrument(2) == 0
    assert player.channel_sample_position(2) == 9999999999.0
    start = player.channel_sample_position(0)
    player.get_audio(100)
    assert player.channel_sample_position(0) > start


def test_channel_out_of_range():
    player = Micromod(build_module(), RATE)
    with pytest.raises(IndexError):
        player.channel_instrument(4)
    with pytest.raises(IndexError):
        player.channel_sample_position(-1)


def test_truncated_sample_data_plays_silence():
    data = build_module([cell(0, 0)])
    player = Micromod(data[:1100], RATE)
    frames = player.get_audio(100)
    assert len(frames) == 200
    assert set(frames) == {0}