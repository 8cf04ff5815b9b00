# python tests/ws_client.py --wav sample.wav

import argparse
import asyncio
import io
import json

import numpy as np
import soundfile as sf
import websockets


def chunk_audio(path, chunk_seconds=5.0):
    """Yield (seq, duration_sec, bytes_wav) for each chunk, like the browser recorder's 5s timer."""
    data, sr = sf.read(path, dtype="int16")
    if data.ndim > 1:
        data = data[:, 0]  # use first channel if stereo

    samples_per_chunk = int(chunk_seconds * sr)
    for seq, start in enumerate(range(0, len(data), samples_per_chunk)):
        chunk = np.ascontiguousarray(data[start:start + samples_per_chunk])

        # write small wav to memory (PCM 16)
        buf = io.BytesIO()
        sf.write(buf, chunk, sr, format="WAV", subtype="PCM_16")
        yield seq, len(chunk) / sr, buf.getvalue()


async def run(url, wav_path, chunk_seconds=5.0):
    print(f"Connecting to {url}")
    async with websockets.connect(url, ping_interval=20, max_size=32 * 1024 * 1024) as ws:
        hello = json.loads(await ws.recv())
        assert hello["type"] == "connected", hello
        print("Connected:", hello["connectionId"])

        await ws.send(json.dumps({"type": "audio_start", "mimeType": "audio/wav"}))
        ack = json.loads(await ws.recv())
        assert ack["type"] == "audio_start_ack", ack

        for seq, duration_sec, wav_bytes in chunk_audio(wav_path, chunk_seconds=chunk_seconds):
            await ws.send(json.dumps({"type": "chunk_meta", "seq": seq, "durationSec": duration_sec}))
            await ws.send(wav_bytes)

            # wait for this chunk's outcome before sending the next one
            while True:
                resp = json.loads(await ws.recv())
                if resp["type"] == "processing":
                    continue
                if resp["type"] == "transcript":
                    print(f"[{seq:03d}] ({resp['lang']}) {resp['text']}")
                elif resp["type"] == "silence":
                    print(f"[{seq:03d}] ...")
                else:
                    print(f"[{seq:03d}] error: {resp.get('message')}")
                break

        await ws.send(json.dumps({"type": "audio_end"}))


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--url", default="ws://127.0.0.1:3001/ws", help="WebSocket URL")
    ap.add_argument("--wav", default="sample.wav", help="Path to a WAV file")
    ap.add_argument("--chunk-seconds", type=float, default=5.0)
    args = ap.parse_args()
    asyncio.run(run(args.url, args.wav, chunk_seconds=args.chunk_seconds))
