"""Protracker MOD replay engine producing interleaved 16-bit stereo samples."""

from __future__ import annotations

from dataclasses import dataclass, field

MAX_CHANNELS = 16
FP_SHIFT = 14
FP_ONE = 16384
FP_MASK = 16383

_VERSION = "Micromod Protracker replay 20180625"

_HEADER_LEN = 1084
_NO_SAMPLE_POSITION = 9999999999.0

_FINE_TUNING = (
    4340, 4308, 4277, 4247, 4216, 4186, 4156, 4126,
    4096, 4067, 4037, 4008, 3979, 3951, 3922, 3894,
)

_ARP_TUNING = (
    4096, 3866, 3649, 3444, 3251, 3069, 2896, 2734,
    2580, 2435, 2299, 2170, 2048, 1933, 1825, 1722,
)

_SINE_TABLE = (
    0, 24, 49, 74, 97, 120, 141, 161, 180, 197, 212, 224, 235, 244, 250, 253,
    255, 253, 250, 244, 235, 224, 212, 197, 180, 161, 141, 120, 97, 74, 49, 24,
)


class ModuleError(ValueError):
    """Raised when data is not recognised as a module."""


def _s8(value: int) -> int:
    value &= 0xFF
    return value - 256 if value > 127 else value


def _s16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _u16be(data: bytes, offset: int) -> int:
    return (data[offset] << 8) | data[offset + 1]


def _check_header(header: bytes) -> None:
    if len(header) < _HEADER_LEN:
        raise ModuleError(f"module header must be at least {_HEADER_LEN} bytes")


def _num_patterns(header: bytes) -> int:
    return max(header[952 + index] & 0x7F for index in range(128)) + 1


def _num_channels(header: bytes) -> int:
    tag = (_s8(header[1082]) << 8) | _s8(header[1083])
    if tag in (0x4B2E, 0x4B21, 0x542E, 0x5434):  # M.K. M!K! N.T. FLT4
        count = 4
    elif tag == 0x484E:  # xCHN
        count = _s8(header[1080]) - 48
    elif tag == 0x4348:  # xxCH
        count = (_s8(header[1080]) - 48) * 10 + (_s8(header[1081]) - 48)
    else:
        count = 0
    if count > MAX_CHANNELS:
        count = 0
    return count


def get_version() -> str:
    """Return the version string of the replay engine."""
    return _VERSION


def calculate_mod_file_len(module_header) -> int:
    """Return the length in bytes of a module, given at least its 1084-byte header."""
    header = bytes(module_header)
    _check_header(header)
    channels = _num_channels(header)
    if channels <= 0:
        raise ModuleError("data is not recognised as a module")
    length = _HEADER_LEN + 4 * channels * 64 * _num_patterns(header)
    for index in range(1, 32):
        length += _u16be(header, index * 30 + 12) * 2
    return length


@dataclass
class _Note:
    key: int = 0
    instrument: int = 0
    effect: int = 0
    param: int = 0


@dataclass
class _Instrument:
    volume: int = 0
    fine_tune: int = 0
    loop_start: int = 0
    loop_length: int = 0
    offset: int = 0


@dataclass
class _Channel:
    id: int
    note: _Note = field(default_factory=_Note)
    period: int = 0
    porta_period: int = 0
    sample_offset: int = 0
    sample_idx: int = 0
    step: int = 0
    volume: int = 0
    panning: int = 0
    fine_tune: int = 0
    ampl: int = 0
    mute: bool = False
    instrument: int = 0
    assigned: int = 0
    porta_speed: int = 0
    pl_row: int = 0
    fx_count: int = 0
    vibrato_type: int = 0
    vibrato_phase: int = 0
    vibrato_speed: int = 0
    vibrato_depth: int = 0
    tremolo_type: int = 0
    tremolo_phase: int = 0
    tremolo_speed: int = 0
    tremolo_depth: int = 0
    tremolo_add: int = 0
    vibrato_add: int = 0
    arpeggio_add: int = 0


class Micromod:
    """A player for one module at a fixed sampling rate."""

    def __init__(self, data, sampling_rate: int) -> None:
        raw = bytes(data)
        _check_header(raw)
        channels = _num_channels(raw)
        if channels <= 0:
            raise ModuleError("data is not recognised as a module")
        if sampling_rate < 8000:
            raise ValueError("sampling rate must be at least 8000 Hz")
        expected = calculate_mod_file_len(raw)
        if len(raw) < expected:
            raw += bytes(expected - len(raw))
        self._data = raw
        self._signed = memoryview(raw).cast("b")
        self._num_channels = channels
        self._sample_rate = sampling_rate
        self._song_length = raw[950] & 0x7F
        self._num_patterns = _num_patterns(raw)

        self._instruments = [_Instrument() for _ in range(32)]
        sample_offset = _HEADER_LEN + self._num_patterns * 64 * channels * 4
        for index in range(1, 32):
            base = index * 30
            sample_length = _u16be(raw, base + 12) * 2
            fine_tune = raw[base + 14] & 0xF
            volume = raw[base + 15] & 0x7F
            loop_start = _u16be(raw, base + 16) * 2
            loop_length = _u16be(raw, base + 18) * 2
            if loop_start + loop_length > sample_length:
                if loop_start // 2 + loop_length <= sample_length:
                    # Some old modules have loop start in bytes.
                    loop_start //= 2
                else:
                    loop_length = sample_length - loop_start
            if loop_length < 4:
                loop_start = sample_length
                loop_length = 0
            self._instruments[index] = _Instrument(
                volume=min(volume, 64),
                fine_tune=(fine_tune & 0x7) - (fine_tune & 0x8) + 8,
                loop_start=loop_start << FP_SHIFT,
                loop_length=loop_length << FP_SHIFT,
                offset=sample_offset,
            )
            sample_offset += sample_length

        self._c2_rate = 8363 if channels > 4 else 8287
        self._gain = 32 if channels > 4 else 64
        self._channels = [_Channel(id=index) for index in range(channels)]

        self._tick_len = 0
        self._tick_offset = 0
        self._pattern = 0
        self._break_pattern = 0
        self._row = 0
        self._next_row = 0
        self._tick = 0
        self._speed = 0
        self._pl_count = -1
        self._pl_channel = -1
        self._random_seed = 0

        self.mute_channel(-1)
        self.set_position(0)

    # Public interface

    def get_string(self, instrument: int) -> str:
        """Return the song name (instrument 0) or an instrument name."""
        offset, length = 0, 20
        if 0 < instrument < 32:
            offset, length = (instrument - 1) * 30 + 20, 22
        chars = []
        for value in self._data[offset:offset + length]:
            chars.append(chr(value) if 32 <= value <= 126 else " ")
        return "".join(chars)

    def calculate_song_duration(self) -> int:
        """Return the song duration in samples at the current sampling rate."""
        duration = 0
        self.set_position(0)
        song_end = False
        while not song_end:
            duration += self._tick_len
            song_end = self._sequence_tick()
        self.set_position(0)
        return duration

    def set_position(self, pos: int) -> None:
        """Jump directly to a pattern in the sequence."""
        if pos >= self._song_length:
            pos = 0
        self._break_pattern = pos
        self._next_row = 0
        self._tick = 1
        self._speed = 6
        self._set_tempo(125)
        self._pl_count = self._pl_channel = -1
        self._random_seed = 0xABCDEF
        for index, chan in enumerate(self._channels):
            chan.id = index
            chan.instrument = chan.assigned = 0
            chan.volume = 0
            chan.panning = 0 if index & 0x3 in (0, 3) else 127
        self._sequence_tick()
        self._tick_offset = 0

    def mute_channel(self, channel: int) -> int:
        """Mute a channel, or un-mute all when negative; return the channel count."""
        if channel < 0:
            for chan in self._channels:
                chan.mute = False
        elif channel < self._num_channels:
            self._channels[channel].mute = True
        return self._num_channels

    def set_gain(self, value: int) -> None:
        """Set the playback gain."""
        self._gain = value

    def get_audio(self, count: int) -> list[int]:
        """Render count stereo frames as an interleaved list of 16-bit samples."""
        buffer = [0] * (2 * max(count, 0))
        self._render(buffer, count)
        return buffer

    def skip(self, count: int) -> None:
        """Advance the replay by count frames without mixing."""
        self._render(None, count)

    def channel_instrument(self, channel: int) -> int:
        """Return the instrument (1-based, 0 for none) playing on a channel."""
        return self._channel(channel).instrument

    def channel_sample_position(self, channel: int) -> float:
        """Return the sample position of a channel, or a huge value if idle."""
        chan = self._channel(channel)
        if chan.instrument == 0:
            return _NO_SAMPLE_POSITION
        return chan.sample_idx / FP_MASK

    # Sequencing

    def _channel(self, channel: int) -> _Channel:
        if not 0 <= channel < self._num_channels:
            raise IndexError(f"channel {channel} out of range")
        return self._channels[channel]

    def _set_tempo(self, tempo: int) -> None:
        self._tick_len = ((self._sample_rate << 1) + (self._sample_rate >> 1)) // tempo

    def _update_frequency(self, chan: _Channel) -> None:
        period = chan.period + chan.vibrato_add
        period = period * _ARP_TUNING[chan.arpeggio_add] >> 11
        period = (period >> 1) + (period & 1)
        if period < 14:
            period = 6848
        freq = self._c2_rate * 428 // period
        chan.step = (freq << FP_SHIFT) // self._sample_rate
        volume = max(0, min(chan.volume + chan.tremolo_add, 64))
        chan.ampl = (volume * self._gain >> 5) & 0xFF

    @staticmethod
    def _tone_portamento(chan: _Channel) -> None:
        source, dest = chan.period, chan.porta_period
        if source < dest:
            source = min(source + chan.porta_speed, dest)
        elif source > dest:
            source = max(source - chan.porta_speed, dest)
        chan.period = source

    @staticmethod
    def _volume_slide(chan: _Channel, param: int) -> None:
        volume = chan.volume + (param >> 4) - (param & 0xF)
        chan.volume = max(0, min(volume, 64))

    def _waveform(self, phase: int, kind: int) -> int:
        kind &= 0x3
        if kind == 0:  # Sine.
            amplitude = _SINE_TABLE[phase & 0x1F]
            if phase & 0x20:
                amplitude = -amplitude
            return amplitude
        if kind == 1:  # Saw down.
            return 255 - (((phase + 0x20) & 0x3F) << 3)
        if kind == 2:  # Square.
            return 255 - ((phase & 0x20) << 4)
        amplitude = (self._random_seed >> 20) - 255
        self._random_seed = (self._random_seed * 65 + 17) & 0x1FFFFFFF
        return amplitude

    def _vibrato(self, chan: _Channel) -> None:
        wave = self._waveform(chan.vibrato_phase, chan.vibrato_type)
        chan.vibrato_add = _s8(wave * chan.vibrato_depth >> 7)

    def _tremolo(self, chan: _Channel) -> None:
        wave = self._waveform(chan.tremolo_phase, chan.tremolo_type)
        chan.tremolo_add = _s8(wave * chan.tremolo_depth >> 6)

    def _trigger(self, chan: _Channel) -> None:
        note = chan.note
        ins = note.instrument
        if 0 < ins < 32:
            instrument = self._instruments[ins]
            chan.assigned = ins
            chan.sample_offset = 0
            chan.fine_tune = instrument.fine_tune
            chan.volume = instrument.volume
            if instrument.loop_length > 0 and chan.instrument > 0:
                chan.instrument = ins
        if note.effect == 0x09:
            chan.sample_offset = (note.param & 0xFF) << 8
        elif note.effect == 0x15:
            chan.fine_tune = note.param & 0xFF
        if note.key > 0:
            period = (note.key * _FINE_TUNING[chan.fine_tune & 0xF]) >> 11
            chan.porta_period = ((period >> 1) + (period & 1)) & 0xFFFF
            if note.effect not in (0x3, 0x5):
                chan.instrument = chan.assigned
                chan.period = chan.porta_period
                chan.sample_idx = chan.sample_offset << FP_SHIFT
                if chan.vibrato_type < 4:
                    chan.vibrato_phase = 0
                if chan.tremolo_type < 4:
                    chan.tremolo_phase = 0

    def _channel_row(self, chan: _Channel) -> None:
        effect = chan.note.effect
        param = chan.note.param
        chan.vibrato_add = chan.tremolo_add = chan.arpeggio_add = chan.fx_count = 0
        if not (effect == 0x1D and param > 0):
            self._trigger(chan)
        if effect == 0x3:  # Tone portamento.
            if param > 0:
                chan.porta_speed = param
        elif effect == 0x4:  # Vibrato.
            if param & 0xF0:
                chan.vibrato_speed = param >> 4
            if param & 0x0F:
                chan.vibrato_depth = param & 0xF
            self._vibrato(chan)
        elif effect == 0x6:  # Vibrato and volume slide.
            self._vibrato(chan)
        elif effect == 0x7:  # Tremolo.
            if param & 0xF0:
                chan.tremolo_speed = param >> 4
            if param & 0x0F:
                chan.tremolo_depth = param & 0xF
            self._tremolo(chan)
        elif effect == 0x8:  # Set panning, not for 4-channel modules.
            if self._num_channels != 4:
                chan.panning = param if param < 128 else 127
        elif effect == 0xB:  # Pattern jump.
            if self._pl_count < 0:
                self._break_pattern = param
                self._next_row = 0
        elif effect == 0xC:  # Set volume.
            chan.volume = min(param, 64)
        elif effect == 0xD:  # Pattern break.
            if self._pl_count < 0:
                if self._break_pattern < 0:
                    self._break_pattern = self._pattern + 1
                self._next_row = (param >> 4) * 10 + (param & 0xF)
                if self._next_row >= 64:
                    self._next_row = 0
        elif effect == 0xF:  # Set speed or tempo.
            if param > 0:
                if param < 32:
                    self._tick = self._speed = param
                else:
                    self._set_tempo(param)
        elif effect == 0x11:  # Fine portamento up.
            chan.period = max(chan.period - param, 0)
        elif effect == 0x12:  # Fine portamento down.
            chan.period = min(chan.period + param, 65535)
        elif effect == 0x14:  # Set vibrato waveform.
            if param < 8:
                chan.vibrato_type = param
        elif effect == 0x16:  # Pattern loop.
            self._pattern_loop(chan, param)
        elif effect == 0x17:  # Set tremolo waveform.
            if param < 8:
                chan.tremolo_type = param
        elif effect == 0x1A:  # Fine volume up.
            chan.volume = min(chan.volume + param, 64)
        elif effect == 0x1B:  # Fine volume down.
            chan.volume = max(chan.volume - param, 0)
        elif effect == 0x1C:  # Note cut.
            if param <= 0:
                chan.volume = 0
        elif effect == 0x1E:  # Pattern delay.
            self._tick = self._speed + self._speed * param
        self._update_frequency(chan)

    def _pattern_loop(self, chan: _Channel, param: int) -> None:
        if param == 0:
            chan.pl_row = self._row & 0xFF
        if chan.pl_row < self._row and self._break_pattern < 0:
            if self._pl_count < 0:
                self._pl_count = param
                self._pl_channel = chan.id
            if self._pl_channel == chan.id:
                if self._pl_count == 0:
                    chan.pl_row = (self._row + 1) & 0xFF
                else:
                    self._next_row = chan.pl_row
                self._pl_count -= 1

    def _channel_tick(self, chan: _Channel) -> None:
        effect = chan.note.effect
        param = chan.note.param
        chan.fx_count = (chan.fx_count + 1) & 0xFF
        if effect == 0x1:  # Portamento up.
            chan.period = max(chan.period - param, 0)
        elif effect == 0x2:  # Portamento down.
            chan.period = min(chan.period + param, 65535)
        elif effect == 0x3:  # Tone portamento.
            self._tone_portamento(chan)
        elif effect == 0x4:  # Vibrato.
            chan.vibrato_phase = (chan.vibrato_phase + chan.vibrato_speed) & 0xFF
            self._vibrato(chan)
        elif effect == 0x5:  # Tone portamento and volume slide.
            self._tone_portamento(chan)
            self._volume_slide(chan, param)
        elif effect == 0x6:  # Vibrato and volume slide.
            chan.vibrato_phase = (chan.vibrato_phase + chan.vibrato_speed) & 0xFF
            self._vibrato(chan)
            self._volume_slide(chan, param)
        elif effect == 0x7:  # Tremolo.
            chan.tremolo_phase = (chan.tremolo_phase + chan.tremolo_speed) & 0xFF
            self._tremolo(chan)
        elif effect == 0xA:  # Volume slide.
            self._volume_slide(chan, param)
        elif effect == 0xE:  # Arpeggio.
            if chan.fx_count > 2:
                chan.fx_count = 0
            if chan.fx_count == 0:
                chan.arpeggio_add = 0
            elif chan.fx_count == 1:
                chan.arpeggio_add = param >> 4
            else:
                chan.arpeggio_add = param & 0xF
        elif effect == 0x19:  # Retrigger.
            if chan.fx_count >= param:
                chan.fx_count = 0
                chan.sample_idx = 0
        elif effect == 0x1C:  # Note cut.
            if param == chan.fx_count:
                chan.volume = 0
        elif effect == 0x1D:  # Note delay.
            if param == chan.fx_count:
                self._trigger(chan)
        if effect > 0:
            self._update_frequency(chan)

    def _sequence_row(self) -> bool:
        song_end = False
        if self._next_row < 0:
            self._break_pattern = self._pattern + 1
            self._next_row = 0
        if self._break_pattern >= 0:
            if self._break_pattern >= self._song_length:
                self._break_pattern = self._next_row = 0
            if self._break_pattern <= self._pattern:
                song_end = True
            self._pattern = self._break_pattern
            for chan in self._channels:
                chan.pl_row = 0
            self._break_pattern = -1
        self._row = self._next_row
        self._next_row = self._row + 1
        if self._next_row >= 64:
            self._next_row = -1
        sequence_entry = self._data[952 + self._pattern]
        offset = _HEADER_LEN + (sequence_entry * 64 + self._row) * self._num_channels * 4
        for chan in self._channels:
            cell = self._data[offset:offset + 4].ljust(4, b"\0")
            offset += 4
            effect = cell[2] & 0xF
            param = cell[3]
            if effect == 0xE:
                effect = 0x10 | (param >> 4)
                param &= 0xF
            if effect == 0 and param > 0:
                effect = 0xE
            chan.note = _Note(
                key=((cell[0] & 0xF) << 8) | cell[1],
                instrument=(cell[2] >> 4) | (cell[0] & 0x10),
                effect=effect,
                param=param,
            )
            self._channel_row(chan)
        return song_end

    def _sequence_tick(self) -> bool:
        self._tick -= 1
        if self._tick <= 0:
            self._tick = self._speed
            return self._sequence_row()
        for chan in self._channels:
            self._channel_tick(chan)
        return False

    # Mixing

    def _render(self, buffer: list[int] | None, count: int) -> None:
        offset = 0
        while count > 0:
            remain = min(self._tick_len - self._tick_offset, count)
            for chan in self._channels:
                self._resample(chan, buffer, offset, remain)
            self._tick_offset += remain
            if self._tick_offset == self._tick_len:
                self._sequence_tick()
                self._tick_offset = 0
            offset += remain
            count -= remain

    def _resample(self, chan: _Channel, buf: list[int] | None, offset: int, count: int) -> None:
        buf_idx = offset << 1
        buf_end = (offset + count) << 1
        sidx = chan.sample_idx
        step = chan.step
        instrument = self._instruments[chan.instrument]
        llen = instrument.loop_length
        lep1 = instrument.loop_start + llen
        sdat = self._signed
        base = instrument.offset
        ampl = chan.ampl if buf is not None and not chan.mute else 0
        lamp = _s16(ampl * (127 - chan.panning) >> 5)
        ramp = _s16(ampl * chan.panning >> 5)
        while buf_idx < buf_end:
            if sidx >= lep1:
                if llen <= FP_ONE:
                    # One-shot sample.
                    sidx = lep1
                    break
                sidx -= ((sidx - lep1) // llen + 1) * llen
            epos = sidx + ((buf_end - buf_idx) >> 1) * step
            if lamp or ramp:
                epos = min(epos, lep1)
                if lamp and ramp:
                    while sidx < epos:
                        value = sdat[base + (sidx >> FP_SHIFT)]
                        buf[buf_idx] = _s16(buf[buf_idx] + (value * lamp >> 2))
                        buf[buf_idx + 1] = _s16(buf[buf_idx + 1] + (value * ramp >> 2))
                        buf_idx += 2
                        sidx += step
                else:
                    if ramp:
                        buf_idx += 1
                    while sidx < epos:
                        value = sdat[base + (sidx >> FP_SHIFT)]
                        buf[buf_idx] = _s16(buf[buf_idx] + value * ampl)
                        buf_idx += 2
                        sidx += step
                    buf_idx &= ~1
            else:
                buf_idx = buf_end
                sidx = epos
        chan.sample_idx = sidx