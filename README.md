# faceauth

Building blocks for infrared face authentication on Linux. The package holds
the pieces that work without a camera or a neural-network runtime: the wire
protocol, configuration, face geometry and guidance, image quality and
texture liveness, and the array processing around the detector, anti-spoof
and embedding models.

## Modules

- `faceauth.protocol`: the messages exchanged between a PAM module, the
  daemon and a UI. PAM requests are `AuthRequest` and `CancelRequest`; daemon
  replies are `FeedbackMessage` and `AuthResultMessage`; UI messages are
  `UiSessionStarted`, `UiFeedback` and `UiSessionEnded`. `FeedbackState` and
  `AuthOutcome` are the enums they carry. `encode(msg)` turns any of them into
  bytes (little-endian, enum variants as u32, strings as a u64 length and
  UTF-8); `decode_pam_request`, `decode_daemon_message` and
  `decode_ui_message` turn bytes back into messages and raise `ProtocolError`
  on truncated or invalid data.
- `faceauth.framing`: `write_message(writer, msg)` writes an encoded message
  preceded by its 4-byte little-endian length; `read_message(reader, decoder)`
  reads one frame and passes the payload to one of the `decode_*` functions.
  A stream that ends mid-frame raises `EOFError`.
- `faceauth.config`: `Config.load(path)` reads a TOML file into the sections
  `platform`, `daemon`, `camera`, `recognition`, `liveness`, `geometry`,
  `logging` and `notify`. Missing fields keep their defaults, a missing file
  gives the defaults for everything, and malformed TOML or wrongly typed
  values raise `ConfigError`. `Config.load_system()` reads
  `/etc/face-auth/config.toml`.
- `faceauth.geometry`: `analyze_geometry` estimates face width ratio, yaw,
  pitch and roll from five `Landmarks` and a `BBox`. `classify` maps those
  `FaceMetrics` to a `FeedbackState` in a fixed priority order (IR
  saturation, eyes, distance, roll, yaw, pitch). `StateMachine.transition`
  debounces guidance changes, lets `AUTHENTICATING` through at once, and
  stops emitting after `finish()`.
- `faceauth.alignment`: `align_face` warps a grayscale frame with a
  similarity transform (`compute_similarity_transform`) into a 112×112
  `AlignedFace`.
- `faceauth.quality`: `ir_saturated` (more than 30% of the face region above
  250), `blur_score` (variance of the Laplacian), and `ir_liveness_check`,
  which returns `IrLivenessScores` built from LBP entropy and the coefficient
  of variation of 16×16 patch contrasts; `IrLivenessScores.is_live` applies
  the thresholds.
- `faceauth.detection`: `preprocess` builds the padded 1×3×640×640 detector
  input; `decode_outputs` turns the nine detector output tensors into
  `Detection` objects, applying the confidence threshold and `nms`.
- `faceauth.liveness`: `preprocess` crops a square 20% larger than the face
  and resizes it to 1×3×128×128; `result_from_output` applies `softmax2` to
  the model logits and returns a `LivenessResult` with `is_real(threshold)`.
- `faceauth.recognition`: `preprocess` equalizes an aligned face with `clahe`
  and scales it to [-1, 1]; `embedding_from_output` checks for a 512-value
  output and `l2_normalize`s it; `cosine_similarity` compares two embeddings.
- `faceauth.ir_emitter`: `IrEmitterConfig.load` and `IrEmitterConfig.parse`
  read the emitter description file (`unit`, `selector`, `enable_data`,
  optional `disable_data`). `activate(fd)` and `deactivate(fd)` send the
  stored bytes with a UVC `SET_CUR` ioctl to a camera device already opened
  by the caller. Errors raise `IrEmitterError`.

## Installation

```
pip install .
```

## Example

```python
from faceauth.config import Config
from faceauth.geometry import BBox, Landmarks, analyze_geometry, classify

cfg = Config.load("/etc/face-auth/config.toml")
landmarks = Landmarks(
    left_eye=(100.0, 150.0), right_eye=(180.0, 150.0), nose=(140.0, 180.0),
    left_mouth=(110.0, 220.0), right_mouth=(170.0, 220.0),
    left_eye_conf=0.95, right_eye_conf=0.95,
)
bbox = BBox(80.0, 120.0, 200.0, 250.0)
metrics = analyze_geometry(landmarks, bbox, 640, 480)
print(classify(metrics, cfg.geometry))  # FeedbackState.AUTHENTICATING
```

## What the package does not do

- It has no daemon, no PAM module and no command-line tools; it provides the
  pieces such programs are built from.
- It does not capture frames from a camera.
- It does not load or run the detection, anti-spoof or recognition models.
  The `detection`, `liveness` and `recognition` modules prepare the input
  arrays and interpret the output arrays; running the model is up to the
  caller.
- It does not store enrolled faces or embeddings.

## Running the tests

```
pip install .[test]
pytest
```