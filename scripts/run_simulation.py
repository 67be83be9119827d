#!/usr/bin/env python3
"""Helper script to generate a synthetic survey and georeference it locally."""
import argparse
import os
import subprocess

parser = argparse.ArgumentParser()
parser.add_argument("--out", required=True)
parser.add_argument("--packets", type=int, default=50)
args = parser.parse_args()

survey_dir = os.path.abspath(args.out)

# generate logs
subprocess.check_call(["python3", "-m", "simulation.generate_synthetic", "--out", survey_dir, "--packets", str(args.packets)])
# georeference
cloud = os.path.join(survey_dir, "trial_.txt")
subprocess.check_call([
    "python3", "-m", "georef.pipeline",
    "--lidar", os.path.join(survey_dir, "lidarData.txt"),
    "--imu", os.path.join(survey_dir, "IMU.txt"),
    "--out", cloud,
    "--summary", os.path.join(survey_dir, "summary.json"),
])
print("Done. point cloud in:", cloud)
