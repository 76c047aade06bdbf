"""
SnapClass Training Pipeline
===========================

Background training system that:

1. Reads every labelled sample from the sample store.
2. Extracts frozen MobileNetV2 embeddings for each image and one
   augmented variant of it.
3. Trains a small dense classification head, continuing the previous
   head when the label set is unchanged and incremental mode is on.
4. Keeps the best checkpoint ever seen for the label set, decaying the
   learning rate when validation accuracy plateaus.
5. Reports progress through a pollable status snapshot.

Package layout
--------------
config.py        – ``TrainingConfig`` dataclass, paths, hyperparameter defaults.
types.py         – Sample / EpochResult / CheckpointMetadata records, store protocol.
errors.py        – Exception taxonomy (validation, concurrency, io, extractor, training).
augment.py       – Randomised image augmentation.
features.py      – Image decoding and batched feature extraction.
extractor.py     – Frozen MobileNetV2 embedding model.
backend.py       – Keras head: build, compile, per-epoch fit, save / load.
checkpoint.py    – Atomic keep-best checkpoint store.
schedule.py      – Learning-rate decay on validation plateaus.
status.py        – ``TrainingStatus`` and the non-blocking reporter.
orchestrator.py  – Single-flight session state machine.
tasks.py         – Process-wide orchestrator, start / status helpers.
"""
