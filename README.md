# modvis

A pure-Python player for Protracker MOD music files. It also has a small
visualizer that draws the left and right waveforms and the activity of each
channel into an in-memory 320×240 indexed-colour framebuffer.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Command line

```
modvis path/to/song.mod
modvis path/to/song.mod --wav song.wav
modvis path/to/song.mod --wav intro.wav --seconds 10
```

The command loads the module and prints the song name, the number of
channels, the song duration in seconds, and the number and name of every
instrument whose name is not blank.

With `--wav PATH` it also renders the whole song at 44100 Hz as a 16-bit
stereo WAV file. `--seconds N` limits the rendering to the first N seconds.

If the file cannot be read or is not recognised as a module, the command
prints an error and exits with status 1.

## Library use

### Playing a module

```python
from modvis.micromod import Micromod, ModuleError, calculate_mod_file_len, get_version

data = open("song.mod", "rb").read()

try:
    player = Micromod(data, 44100)
except ModuleError as err:
    print("not a playable module:", err)
else:
    print(player.get_string(0))          # song name, 20 characters
    print(player.get_string(1))          # name of instrument 1, 22 characters
    print(player.calculate_song_duration(), "samples")

    audio = player.get_audio(1024)       # 1024 stereo frames, 2048 ints L, R, L, R, ...
    player.skip(44100)                   # advance one second without mixing
    player.set_position(2)               # jump to sequence position 2
    player.mute_channel(0)               # mute the first channel
    player.mute_channel(-1)              # un-mute every channel
    player.set_gain(32)
```

- `Micromod(data, sampling_rate)` raises `ModuleError` (a `ValueError`) when
  the data is shorter than the 1084-byte header or is not recognised as a
  module, and `ValueError` when the sampling rate is below 8000 Hz. Data that
  is shorter than the length the header calls for is padded with zeros.
- `get_audio(count)` returns a list of `2 * count` signed 16-bit values,
  interleaved left and right.
- `get_string(index)` returns the song name for index 0 and an instrument name
  for 1 to 31; characters outside printable ASCII become spaces.
- `calculate_song_duration()` returns the duration in samples at the player's
  sampling rate and rewinds the player to the start.
- `mute_channel(channel)` returns the number of channels in the module.
- `channel_instrument(channel)` and `channel_sample_position(channel)` report
  what a channel is currently playing; the position is very large when the
  channel has no instrument. Both raise `IndexError` for a channel the module
  does not have.

`calculate_mod_file_len(header)` reports the full file length from the first
1084 bytes of a module, which is useful when reading modules from a stream.
`get_version()` returns the version string of the replay engine.

### Drawing

`modvis.display.Framebuffer(width, height)` is an 8-bit indexed framebuffer
(320×240 by default) whose `pixels` attribute is a `bytearray`, with a
256-entry palette. It offers `cls`, `set_pixel`, `get_pixel` and `hline`
(drawing from `x1` up to, but not including, `x2`); drawing outside the
framebuffer is ignored and `get_pixel` returns 0 there. Palette entries are
set with `set_palette_entry(index, red, green, blue)` and read with
`palette_entry(index)`.

The helpers `clamp`, `saturate` and `fract` are provided alongside, and the
`Button` enum names the gamepad buttons `UP`, `DOWN`, `LEFT`, `RIGHT`, `A`,
`B`, `X` and `Y`.

### The visualizer

```python
from modvis.cart import Visualizer

vis = Visualizer(data, 5)   # run the visual replay at 44100 / 5 Hz
fb = vis.update(1 / 60)     # catch up to the given time in seconds and redraw
left = vis.sound(0)         # audio sample in -1.0 .. 1.0; index 0 restarts the song
right = vis.sound(1)
```

`update` sets a grayscale palette, draws the last 320 left and right samples
as two traces, and draws a bar for each of the first four channels whose
height falls as the channel's sample plays. It returns the `Framebuffer`,
which is also available as `vis.framebuffer`.

`sound(sample_index)` returns interleaved 44100 Hz output: even indices are
the left channel, odd indices the right.

## What it does not do

The package plays nothing through a sound device and opens no window. Audio
comes back as lists of samples or is written to a WAV file, and the
visualizer only fills an in-memory framebuffer; showing it on screen and
feeding audio to a device are left to the caller.