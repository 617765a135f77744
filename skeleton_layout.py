"""
Keypoint layouts for MediaPipe landmark models and the OpenPose skeleton.

MediaPipe pose (BlazePose, 33 landmarks):
    0=nose, 2=left_eye, 5=right_eye, 7=left_ear, 8=right_ear,
    11/12=shoulders, 13/14=elbows, 15/16=wrists, 23/24=hips,
    25/26=knees, 27/28=ankles (left/right)

OpenPose body (COCO 18):
    0=nose, 1=neck, 2=r_shoulder, 3=r_elbow, 4=r_wrist, 5=l_shoulder,
    6=l_elbow, 7=l_wrist, 8=r_hip, 9=r_knee, 10=r_ankle, 11=l_hip,
    12=l_knee, 13=l_ankle, 14=r_eye, 15=l_eye, 16=r_ear, 17=l_ear
"""

from typing import List

MP_NOSE = 0
MP_LEFT_EYE = 2
MP_RIGHT_EYE = 5
MP_LEFT_EAR = 7
MP_RIGHT_EAR = 8
MP_LEFT_SHOULDER = 11
MP_RIGHT_SHOULDER = 12
MP_LEFT_ELBOW = 13
MP_RIGHT_ELBOW = 14
MP_LEFT_WRIST = 15
MP_RIGHT_WRIST = 16
MP_LEFT_HIP = 23
MP_RIGHT_HIP = 24
MP_LEFT_KNEE = 25
MP_RIGHT_KNEE = 26
MP_LEFT_ANKLE = 27
MP_RIGHT_ANKLE = 28

HAND_WRIST = 0

OP_NOSE = 0
OP_NECK = 1
OP_R_SHOULDER = 2
OP_R_ELBOW = 3
OP_R_WRIST = 4
OP_L_SHOULDER = 5
OP_L_ELBOW = 6
OP_L_WRIST = 7
OP_R_HIP = 8
OP_R_KNEE = 9
OP_R_ANKLE = 10
OP_L_HIP = 11
OP_L_KNEE = 12
OP_L_ANKLE = 13
OP_R_EYE = 14
OP_L_EYE = 15
OP_R_EAR = 16
OP_L_EAR = 17

# OpenPose slot -> MediaPipe pose index. Neck has no source; it is synthesized.
OPENPOSE_FROM_MEDIAPIPE = {
    OP_NOSE: MP_NOSE,
    OP_R_SHOULDER: MP_RIGHT_SHOULDER,
    OP_R_ELBOW: MP_RIGHT_ELBOW,
    OP_R_WRIST: MP_RIGHT_WRIST,
    OP_L_SHOULDER: MP_LEFT_SHOULDER,
    OP_L_ELBOW: MP_LEFT_ELBOW,
    OP_L_WRIST: MP_LEFT_WRIST,
    OP_R_HIP: MP_RIGHT_HIP,
    OP_R_KNEE: MP_RIGHT_KNEE,
    OP_R_ANKLE: MP_RIGHT_ANKLE,
    OP_L_HIP: MP_LEFT_HIP,
    OP_L_KNEE: MP_LEFT_KNEE,
    OP_L_ANKLE: MP_LEFT_ANKLE,
    OP_R_EYE: MP_RIGHT_EYE,
    OP_L_EYE: MP_LEFT_EYE,
    OP_R_EAR: MP_RIGHT_EAR,
    OP_L_EAR: MP_LEFT_EAR,
}

PERSON_CENTER_SOURCES = (MP_LEFT_SHOULDER, MP_RIGHT_SHOULDER, MP_LEFT_HIP, MP_RIGHT_HIP)

BODY_CONNECTIONS = [
    # Torso
    (OP_NECK, OP_NOSE),
    (OP_R_SHOULDER, OP_L_SHOULDER),
    (OP_R_HIP, OP_L_HIP),
    (OP_R_SHOULDER, OP_R_HIP),
    (OP_L_SHOULDER, OP_L_HIP),
    # Right arm
    (OP_R_SHOULDER, OP_R_ELBOW),
    (OP_R_ELBOW, OP_R_WRIST),
    # Left arm
    (OP_L_SHOULDER, OP_L_ELBOW),
    (OP_L_ELBOW, OP_L_WRIST),
    # Right leg
    (OP_R_HIP, OP_R_KNEE),
    (OP_R_KNEE, OP_R_ANKLE),
    # Left leg
    (OP_L_HIP, OP_L_KNEE),
    (OP_L_KNEE, OP_L_ANKLE),
]

HEAD_CONNECTIONS = [
    (OP_R_EYE, OP_L_EYE),
    (OP_NOSE, OP_R_EYE),
    (OP_NOSE, OP_L_EYE),
    (OP_R_EYE, OP_R_EAR),
    (OP_L_EYE, OP_L_EAR),
]

# Joints drawn with the body, nose included.
BODY_JOINTS = (
    OP_NOSE,
    OP_NECK,
    OP_R_SHOULDER,
    OP_R_ELBOW,
    OP_R_WRIST,
    OP_L_SHOULDER,
    OP_L_ELBOW,
    OP_L_WRIST,
    OP_R_HIP,
    OP_R_KNEE,
    OP_R_ANKLE,
    OP_L_HIP,
    OP_L_KNEE,
    OP_L_ANKLE,
)

# Joints drawn with the face.
HEAD_JOINTS = (OP_R_EYE, OP_L_EYE, OP_R_EAR, OP_L_EAR)

# 0=wrist, 1-4=thumb, 5-8=index, 9-12=middle, 13-16=ring, 17-20=pinky
HAND_CONNECTIONS = [
    (0, 1), (1, 2), (2, 3), (3, 4),
    (0, 5), (5, 6), (6, 7), (7, 8),
    (0, 9), (9, 10), (10, 11), (11, 12),
    (0, 13), (13, 14), (14, 15), (15, 16),
    (0, 17), (17, 18), (18, 19), (19, 20),
]

# Face mesh index for each of the 70 OpenPose face points.
FACE_MESH_TO_OPENPOSE70 = [
    # Jawline (0-16)
    234, 93, 132, 58, 172, 136, 150, 149, 176, 148, 152, 377, 400, 378, 379, 365, 397,
    # Right eyebrow (17-21)
    70, 63, 105, 66, 107,
    # Left eyebrow (22-26)
    336, 296, 334, 293, 300,
    # Nose bridge (27-30)
    168, 6, 197, 195,
    # Nose base (31-35)
    5, 4, 1, 19, 94,
    # Right eye (36-41)
    33, 160, 158, 133, 153, 144,
    # Left eye (42-47)
    362, 385, 387, 263, 373, 380,
    # Outer mouth (48-59)
    61, 146, 91, 181, 84, 17, 314, 405, 321, 375, 291, 185,
    # Inner mouth (60-67)
    78, 95, 88, 178, 87, 14, 317, 402,
    # Pupils (68-69), iris centers
    468, 473,
]


def face_to_openpose70(face_keypoints: List[float]) -> List[float]:
    """Reduce flattened face mesh triples to the 70-point OpenPose face layout."""
    out = [0.0] * (len(FACE_MESH_TO_OPENPOSE70) * 3)
    for op_idx, mesh_idx in enumerate(FACE_MESH_TO_OPENPOSE70):
        base = mesh_idx * 3
        if base + 2 >= len(face_keypoints):
            continue
        out[op_idx * 3:op_idx * 3 + 3] = face_keypoints[base:base + 3]
    return out
