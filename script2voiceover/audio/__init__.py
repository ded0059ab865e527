"""WAV handling: chunk parsing, concatenation and integrity analysis."""
