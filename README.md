# voxio

A playback engine for RIFF/WAVE audio. It plays tracks back to back without a gap, seeks,
converts sample rates to the output rate, maps channels to the output layout and keeps a tap
of the most recently output samples for visualisation.

## Modules

- `voxio.engine` – `Vox`, the player you talk to; `OutputCallback`, which fills output buffers
  from the sample ring; and `NullOutput`, an output that discards audio.
- `voxio.worker` – `VoxWorker`, which runs on a background thread (started by `spawn`),
  decodes the current track and pushes samples into a `SampleRing`. Also the command types
  `Play`, `QueueNext`, `Seek` (with a `SeekPosition`), `Stop` and `Shutdown`, and the channel
  mapping helpers `map_frames`, `push_samples_mapped` and `push_samples_mapped_count`.
- `voxio.decoder` – `open_decoder(path)` returns a `VoxDecoder` that hands out interleaved
  float32 samples packet by packet (`next_packet`, or iterate over it), with `seek`,
  `playable_duration`, `close` and an `info` of type `AudioInfo`.
- `voxio.resampler` – `VoxResampler`, a chunked FFT sample-rate converter;
  `make_resampler` returns `None` when the rates already match.
- `voxio.state` – `SharedState`, the flags and counters shared by the player, the worker and
  the output callback.
- `voxio.tap` – `SampleTap`, a bounded buffer of recent samples.
- `voxio.errors` – `VoxError` and its subclasses `FileOpenError`, `OutputError`,
  `DecoderError`, `ResamplerError`, `SeekError` and `ChannelClosedError`, plus the engine's
  tuning constants (`BUFFER_MS`, `SEEK_FADE_MS`, `SEEK_PREFILL_MS` and others).

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Using the player

```python
from voxio.engine import Vox
from voxio.errors import FileOpenError

with Vox() as vox:
    try:
        vox.play("first.wav")
        vox.set_next("second.wav")   # follows the current track with no gap

        vox.seek_relative(10.0)      # ten seconds ahead
        vox.toggle_playback()        # pause
        vox.resume()

        print(vox.position(), "of", vox.duration())   # both in seconds
        levels = vox.get_latest_samples(512)

        if vox.track_ended():
            vox.set_next("third.wav")
    except FileOpenError as err:
        print("could not open:", err)
```

- `play` and `set_next` raise `FileOpenError` when the path does not exist.
- `set_next` is not a queue: each call replaces the track given before. If the command
  channel is full, the request is dropped.
- `seek_to` and `seek_relative` do nothing while no track is loaded. During a seek the output
  is silent; afterwards playback fades in over `SEEK_FADE_MS` milliseconds.
- `pause` has no effect while nothing is loaded, and `toggle_playback` on an idle player
  leaves it unpaused.
- `track_ended` reports whether a track finished since the last call, and clears the flag.
- `get_latest_samples` removes the samples it returns from the tap, oldest first.
- `close` (or leaving the `with` block) shuts the worker down and stops the output.

If the worker meets an error it cannot recover from, such as a file given to `set_next` that
exists but cannot be decoded, it prints the error to standard error and stops. After that,
`play` and `stop` raise `OutputError` and the seek methods raise `SeekError`.

## Outputs

`Vox(output=...)` takes any object with `sample_rate` and `channels` attributes and
`start(callback)` / `stop()` methods. The callback is called with a float32 NumPy array to
fill in place. The default is `NullOutput()`, which calls the callback with blocks of
`block_frames` frames at the pace of its sample rate on a background thread. With
`NullOutput(realtime=False)` nothing is driven automatically; the callback is kept in
`output.callback` so you can call it yourself, which is handy in tests.

## What it does not do

- It produces no sound by itself: there is no output for a real audio device, only
  `NullOutput`. To hear anything you must supply an output as described above.
- The decoder reads only RIFF/WAVE files holding 8-, 16-, 24- or 32-bit integer PCM or 32- or
  64-bit float samples. Other formats raise `DecoderError`.
- WAVE files carry no encoder delay or padding, so gapless trimming never removes anything
  in practice.
- There is no command-line program, playlist or library management.