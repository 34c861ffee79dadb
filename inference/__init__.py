"""Local inference runtime.

**engine.py**
    ``InferenceEngine`` -- load/unload, generate, stream, tokenize. All native
    work is serialized on one worker thread.

**session.py**
    ``ModelSession`` -- KV-cache position bookkeeping and context shifting.

**backend.py**
    ``DecoderBackend`` protocol and the llama-cpp-python implementation.

**sampling.py**
    Repeat penalty, top-k, temperature, top-p sampling over logits.

**prompt_format.py**
    Model family detection and chat templates.

**cloud.py** / **router.py**
    Cloud providers and the privacy-tier router that picks local or cloud.
"""
