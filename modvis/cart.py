"""Oscilloscope and channel-activity visualizer for a playing module."""

from __future__ import annotations

import argparse
import sys
import wave
from array import array
from pathlib import Path

from modvis.display import HEIGHT, WIDTH, Framebuffer, clamp
from modvis.micromod import Micromod, ModuleError

SAMPLE_RATE = 44100
FRAME_RATE = 60
VIS_CHANNELS = 4
_FULL_SCALE = 32767.0


class Visualizer:
    """Renders waveforms and per-channel activity while producing audio.

    The visual player runs at the audio rate divided by vis_div; keeping
    vis_div a divider of 735 (1, 3, 5, 7, 15, 21, 35, 49, 105) gives a whole
    number of samples per frame.
    """

    def __init__(self, module_data, vis_div: int = 5) -> None:
        if vis_div < 1:
            raise ValueError("vis_div must be at least 1")
        self._module_data = bytes(module_data)
        self.vis_div = vis_div
        self._player = Micromod(self._module_data, SAMPLE_RATE // vis_div)
        self._audio_player: Micromod | None = None
        self._stereo = [0, 0]
        self.cur_frame = 0
        self.wave_out_pos = 0
        self.waveform_left = [0] * WIDTH
        self.waveform_right = [0] * WIDTH
        self.framebuffer = Framebuffer(WIDTH, HEIGHT)

    def update(self, time: float) -> Framebuffer:
        """Catch up with the audio clock at time seconds and redraw the frame."""
        fb = self.framebuffer
        for index in range(256):
            fb.set_palette_entry(index, index, index, index)

        frame = int(time * FRAME_RATE)
        frame_diff = frame - self.cur_frame
        self.cur_frame = frame
        count = frame_diff * SAMPLE_RATE // FRAME_RATE // self.vis_div
        if count > 0:
            samples = self._player.get_audio(count)
            for left, right in zip(samples[0::2], samples[1::2]):
                self.wave_out_pos += 1
                slot = self.wave_out_pos % WIDTH
                self.waveform_left[slot] = left
                self.waveform_right[slot] = right

        fb.cls(0)
        centre = HEIGHT // 2 + 60
        for x in range(WIDTH):
            slot = (self.wave_out_pos + x) % WIDTH
            for wave_buffer, color in ((self.waveform_left, 128), (self.waveform_right, 180)):
                level = clamp(wave_buffer[slot] / _FULL_SCALE, -1.0, 1.0)
                fb.set_pixel(x, int(level * 60.0 + centre), color)

        bar_width = WIDTH // VIS_CHANNELS
        for channel in range(VIS_CHANNELS):
            try:
                position = self._player.channel_sample_position(channel)
                instrument = self._player.channel_instrument(channel)
            except IndexError:
                break
            height = int(max(0.0, 120.0 - position / 32.0))
            x = channel * bar_width
            for y in range(height):
                fb.hline(x, x + bar_width, y, 8 + instrument * 256 // 32)
        return fb

    def sound(self, sample_index: int) -> float:
        """Return one interleaved output sample in [-1, 1]; index 0 restarts the song."""
        if sample_index == 0 or self._audio_player is None:
            self._audio_player = Micromod(self._module_data, SAMPLE_RATE)
        channel = sample_index & 1
        if channel == 0:
            self._stereo = self._audio_player.get_audio(1)
        return self._stereo[channel] / _FULL_SCALE


def _write_wav(player: Micromod, path: Path, frames: int) -> None:
    with wave.open(str(path), "wb") as out:
        out.setnchannels(2)
        out.setsampwidth(2)
        out.setframerate(SAMPLE_RATE)
        remaining = frames
        while remaining > 0:
            chunk = min(4096, remaining)
            samples = array("h", player.get_audio(chunk))
            if sys.byteorder == "big":
                samples.byteswap()
            out.writeframes(samples.tobytes())
            remaining -= chunk


def main(argv=None) -> int:
    """Show module information and optionally render it to a WAV file."""
    parser = argparse.ArgumentParser(prog="modvis", description="Protracker module player")
    parser.add_argument("module", type=Path, help="module file to play")
    parser.add_argument("--wav", type=Path, help="write the rendered song to this WAV file")
    parser.add_argument("--seconds", type=float, help="limit rendering to this many seconds")
    args = parser.parse_args(argv)

    try:
        data = args.module.read_bytes()
        player = Micromod(data, SAMPLE_RATE)
    except OSError as error:
        print(f"modvis: {error}", file=sys.stderr)
        return 1
    except ModuleError as error:
        print(f"modvis: {args.module}: {error}", file=sys.stderr)
        return 1

    duration = player.calculate_song_duration()
    print(f"Song: {player.get_string(0).rstrip()}")
    print(f"Channels: {player.mute_channel(-1)}")
    print(f"Duration: {duration / SAMPLE_RATE:.2f} s")
    for index in range(1, 32):
        name = player.get_string(index).rstrip()
        if name:
            print(f"{index:2d}: {name}")

    if args.wav is not None:
        frames = duration
        if args.seconds is not None:
            frames = min(frames, max(0, int(args.seconds * SAMPLE_RATE)))
        _write_wav(player, args.wav, frames)
        print(f"Wrote {frames} frames to {args.wav}")
    return 0


if __name__ == "__main__":
    sys.exit(main())