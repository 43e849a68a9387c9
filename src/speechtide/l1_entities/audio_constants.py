"""Audio front-end parameters expected by the SenseVoice model."""

SAMPLE_RATE = 16000  # model input rate, Hz
FEATURE_DIM = 80  # fbank bins
LFR_WINDOW_SIZE = 7
LFR_WINDOW_SHIFT = 6

LOW_FREQ = 20  # Hz
HIGH_FREQ = -400  # negative: offset below Nyquist

DITHER = 1.0
NORMALIZE_SAMPLES = True
SNIP_EDGES = False

QUIET_AMPLITUDE = 0.001  # mean |sample| below this usually transcribes to nothing
