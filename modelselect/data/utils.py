from pathlib import Path

DATA_PATH = Path(__file__).parent
DEFAULT_DATA_PATH = Path(f"{DATA_PATH}/segmentation.csv")
DEFAULT_SCHEMA_PATH = Path(f"{DATA_PATH}/dataset_schema.json")

SAMPLE_N_SAMPLES = 2019
SAMPLE_CLASS_WEIGHTS = [0.644, 0.356]
SAMPLE_CLASSES = ["PS", "WS"]
SAMPLE_RANDOM_STATE = 975
SAMPLE_CASE_TRAIN_FRACTION = 0.5

SEGMENTATION_FEATURE_NAMES = [
    "AngleCh1",
    "AreaCh1",
    "AvgIntenCh1",
    "AvgIntenCh2",
    "AvgIntenCh3",
    "AvgIntenCh4",
    "ConvexHullAreaRatioCh1",
    "ConvexHullPerimRatioCh1",
    "DiffIntenDensityCh1",
    "EntropyIntenCh1",
    "EqCircDiamCh1",
    "FiberAlign2Ch3",
    "FiberLengthCh1",
    "FiberWidthCh1",
    "IntenCoocASMCh3",
    "KurtIntenCh1",
    "LengthCh1",
    "PerimCh1",
    "ShapeP2ACh1",
    "SkewIntenCh1",
    "TotalIntenCh1",
    "VarIntenCh4",
    "WidthCh1",
    "XCentroid",
    "YCentroid",
]
SAMPLE_INFORMATIVE_FEATURES = 8
SAMPLE_REDUNDANT_FEATURES = 6

