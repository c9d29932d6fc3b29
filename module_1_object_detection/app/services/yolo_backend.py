"""Layer-stepped YOLOv8 inference engine built on ultralytics and torch."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

try:  # pragma: no cover - import guarded for environments without ultralytics
    import torch
    from torchvision.ops import batched_nms
    from ultralytics import YOLO
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "ultralytics, torch and torchvision are required for the YOLO backend. Install "
        "dependencies via `pip install -e .` before running detect.py."
    ) from exc

from ..models import Tensor
from .label_table import LabelTable

LOGGER = logging.getLogger(__name__)

COORD_OUTPUT = 0
LABEL_OUTPUT = 1


class TorchOutputTensor:
    """Model output that may still be resident on the compute device.

    ``request_readback`` starts a non-blocking copy to host memory; on CUDA
    devices completion is tracked with a recorded event so polling never waits.
    """

    def __init__(self, tensor: Optional["torch.Tensor"]) -> None:
        self._device_tensor = tensor
        self._host: Optional["torch.Tensor"] = None
        self._event: Optional[Any] = None

    @property
    def has_backing_data(self) -> bool:
        return self._device_tensor is not None

    def request_readback(self) -> None:
        if self._device_tensor is None:
            raise RuntimeError("Output has no backing data")
        source = self._device_tensor
        if source.is_cuda:
            self._host = source.to("cpu", non_blocking=True)
            self._event = torch.cuda.Event()
            self._event.record()
        else:
            self._host = source

    def is_readback_done(self) -> bool:
        if self._host is None:
            return False
        if self._event is not None:
            return bool(self._event.query())
        return True

    def readback_clone(self) -> Tensor:
        if self._host is None:
            self.request_readback()
        if self._event is not None and not self._event.query():
            self._event.synchronize()
        host = self._host
        self._host = None
        self._event = None
        return Tensor(host.numpy())

    def release(self) -> None:
        self._device_tensor = None
        self._host = None
        self._event = None


@dataclass
class CompiledModel:
    network: Any
    names: Dict[int, str]
    device: "torch.device"
    source: Path
    outputs: Dict[int, TorchOutputTensor] = field(default_factory=dict)

    @property
    def layer_count(self) -> int:
        return len(self.network.model)

    def labels(self) -> LabelTable:
        return LabelTable.from_mapping(self.names)

    def clear_outputs(self) -> None:
        for output in self.outputs.values():
            output.release()
        self.outputs.clear()


class LayerSchedule:
    """Iterator running one network layer per step, with detection filtering as the last step.

    Supports ``operator.length_hint`` so callers know when no steps remain.
    """

    def __init__(self, backend: "YoloLayerBackend", model: CompiledModel, inputs: "torch.Tensor") -> None:
        self._backend = backend
        self._model = model
        self._layers = list(model.network.model)
        self._save = set(getattr(model.network, "save", []))
        self._x: Any = inputs
        self._cache: List[Any] = []
        self._position = 0
        self._total = len(self._layers) + 1

    def __iter__(self) -> "LayerSchedule":
        return self

    def __next__(self) -> int:
        if self._position >= self._total:
            raise StopIteration
        with torch.inference_mode():
            if self._position < len(self._layers):
                self._run_layer(self._layers[self._position])
            else:
                self._publish()
        self._position += 1
        return self._position

    def __length_hint__(self) -> int:
        return self._total - self._position

    def _run_layer(self, layer: Any) -> None:
        if layer.f != -1:
            if isinstance(layer.f, int):
                self._x = self._cache[layer.f]
            else:
                self._x = [self._x if j == -1 else self._cache[j] for j in layer.f]
        self._x = layer(self._x)
        self._cache.append(self._x if layer.i in self._save else None)

    def _publish(self) -> None:
        coords, label_ids = self._backend.select(self._x)
        self._model.outputs[COORD_OUTPUT] = TorchOutputTensor(coords)
        self._model.outputs[LABEL_OUTPUT] = TorchOutputTensor(label_ids)
        self._cache.clear()
        self._x = None


class YoloLayerBackend:
    """Inference engine exposing synchronous, stepped and named-output execution."""

    def __init__(
        self,
        confidence: float = 0.23,
        iou: float = 0.6,
        max_detections: int = 300,
        device: str = "cpu",
    ) -> None:
        self.confidence = confidence
        self.iou = iou
        self.max_detections = max_detections
        self.device = torch.device(device)

    def load_model(self, model_path: Path) -> CompiledModel:
        LOGGER.info("Loading YOLO model from %s", model_path)
        yolo = YOLO(str(model_path))
        network = yolo.model.to(self.device).eval()
        model = CompiledModel(network=network, names=dict(yolo.names), device=self.device, source=Path(model_path))
        LOGGER.info("Model has %d layers and %d classes on %s", model.layer_count, len(model.names), self.device)
        return model

    def warm_up(self, model: CompiledModel, input_size: Tuple[int, int], channels: int = 3) -> None:
        """Run one blank inference so the first real job skips lazy initialisation."""

        width, height = input_size
        blank = Tensor(np.zeros((1, channels, height, width), dtype=np.float32))
        self.run_sync(model, blank)
        model.clear_outputs()
        LOGGER.info("Warm-up inference finished")

    def run_sync(self, model: CompiledModel, input_tensor: Tensor) -> Tuple[Tensor, Tensor]:
        inputs = self._to_device(input_tensor)
        with torch.inference_mode():
            prediction = model.network(inputs)
            coords, label_ids = self.select(prediction)
        return Tensor(coords.cpu().numpy()), Tensor(label_ids.cpu().numpy())

    def begin_run(self, model: CompiledModel, input_tensor: Tensor) -> LayerSchedule:
        model.clear_outputs()
        return LayerSchedule(self, model, self._to_device(input_tensor))

    def peek_output(self, model: CompiledModel, index: int) -> Optional[TorchOutputTensor]:
        return model.outputs.get(index)

    def release_outputs(self, model: CompiledModel) -> None:
        model.clear_outputs()

    def select(self, prediction: Any) -> Tuple["torch.Tensor", "torch.Tensor"]:
        """Filter raw head output into centre-format boxes and int32 label ids."""

        if isinstance(prediction, (list, tuple)):
            prediction = prediction[0]
        rows = prediction[0].transpose(0, 1)
        boxes = rows[:, :4]
        scores, classes = rows[:, 4:].max(dim=1)

        keep = scores > self.confidence
        boxes, scores, classes = boxes[keep], scores[keep], classes[keep]
        corners = torch.cat((boxes[:, :2] - boxes[:, 2:] / 2, boxes[:, :2] + boxes[:, 2:] / 2), dim=1)
        kept = batched_nms(corners, scores, classes, self.iou)[: self.max_detections]
        return boxes[kept].float(), classes[kept].to(torch.int32)

    def _to_device(self, input_tensor: Tensor) -> "torch.Tensor":
        return torch.tensor(input_tensor.data, dtype=torch.float32, device=self.device)
