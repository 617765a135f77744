import unittest

from pose_types import (
    BODY_KEYPOINT_COUNT,
    FACE_KEYPOINT_COUNT,
    HAND_KEYPOINT_COUNT,
    Landmark2D,
    PoseDocument,
    RawDetectionSet,
)
from skeleton_layout import (
    FACE_MESH_TO_OPENPOSE70,
    MP_LEFT_HIP,
    MP_LEFT_SHOULDER,
    MP_NOSE,
    MP_RIGHT_HIP,
    MP_RIGHT_SHOULDER,
    OP_L_SHOULDER,
    OP_NECK,
    OP_NOSE,
    OP_R_SHOULDER,
    face_to_openpose70,
)
from skeleton_mapping import map_body, map_detections, map_person, person_center
from tests.landmark_fixtures import make_body, make_face, make_hand


def triple(keypoints, slot):
    return keypoints[slot * 3:slot * 3 + 3]


def centered_body(cx=0.5, cy=0.25, visibility=0.9):
    """Body whose shoulders and hips all sit on one point, so the center is exact."""
    overrides = {idx: (cx, cy, visibility) for idx in (MP_LEFT_SHOULDER, MP_RIGHT_SHOULDER, MP_LEFT_HIP, MP_RIGHT_HIP)}
    return make_body(visibility=visibility, overrides=overrides)


class TestBodyMapping(unittest.TestCase):
    def test_array_lengths(self):
        record = map_person(make_body(), [], [], None, 640, 480)
        self.assertEqual(len(record.pose_keypoints_2d), BODY_KEYPOINT_COUNT * 3)
        self.assertEqual(len(record.hand_left_keypoints_2d), HAND_KEYPOINT_COUNT * 3)
        self.assertEqual(len(record.hand_right_keypoints_2d), HAND_KEYPOINT_COUNT * 3)
        self.assertEqual(len(record.face_keypoints_2d), FACE_KEYPOINT_COUNT * 3)

    def test_confident_landmark_scaled_to_pixels(self):
        keypoints = map_body(make_body(visibility=0.8), 640, 480)
        x, y, c = triple(keypoints, OP_NOSE)
        self.assertAlmostEqual(x, 0.50 * 640)
        self.assertAlmostEqual(y, 0.12 * 480)
        self.assertAlmostEqual(c, 0.8)

    def test_visibility_gate_is_exclusive(self):
        at_gate = make_body(overrides={MP_NOSE: (0.5, 0.12, 0.2)})
        self.assertEqual(triple(map_body(at_gate, 100, 100), OP_NOSE), [0.0, 0.0, 0.0])

        above = make_body(overrides={MP_NOSE: (0.5, 0.12, 0.21)})
        self.assertAlmostEqual(triple(map_body(above, 100, 100), OP_NOSE)[2], 0.21)

    def test_missing_visibility_is_not_confident(self):
        body = make_body(overrides={MP_NOSE: (0.5, 0.12, None)})
        self.assertEqual(triple(map_body(body, 100, 100), OP_NOSE), [0.0, 0.0, 0.0])

    def test_neck_is_shoulder_midpoint_with_min_confidence(self):
        body = make_body(
            overrides={
                MP_LEFT_SHOULDER: (0.6, 0.5, 0.9),
                MP_RIGHT_SHOULDER: (0.4, 0.5, 0.6),
            }
        )
        x, y, c = triple(map_body(body, 1000, 1000), OP_NECK)
        self.assertAlmostEqual(x, 500.0)
        self.assertAlmostEqual(y, 500.0)
        self.assertAlmostEqual(c, 0.6)

    def test_neck_absent_when_one_shoulder_fails_gate(self):
        body = make_body(overrides={MP_LEFT_SHOULDER: (0.6, 0.5, 0.1)})
        keypoints = map_body(body, 1000, 1000)
        self.assertEqual(triple(keypoints, OP_NECK), [0.0, 0.0, 0.0])
        self.assertEqual(triple(keypoints, OP_L_SHOULDER), [0.0, 0.0, 0.0])
        self.assertGreater(triple(keypoints, OP_R_SHOULDER)[2], 0.0)

    def test_triples_are_zero_or_confident(self):
        body = make_body(visibility=0.15, overrides={MP_NOSE: (0.5, 0.12, 0.9)})
        keypoints = map_body(body, 640, 480)
        for slot in range(BODY_KEYPOINT_COUNT):
            x, y, c = triple(keypoints, slot)
            self.assertTrue(c > 0.0 or (x, y, c) == (0.0, 0.0, 0.0), slot)

    def test_short_or_malformed_body_does_not_raise(self):
        keypoints = map_body([Landmark2D(0.5, 0.5, 0.0, 0.9)], 100, 100)
        self.assertAlmostEqual(triple(keypoints, OP_NOSE)[2], 0.9)
        self.assertEqual(triple(keypoints, OP_NECK), [0.0, 0.0, 0.0])

        body = make_body(overrides={MP_NOSE: (float("nan"), 0.1, 0.9)})
        self.assertEqual(triple(map_body(body, 100, 100), OP_NOSE), [0.0, 0.0, 0.0])


class TestPersonCenter(unittest.TestCase):
    def test_mean_of_shoulders_and_hips(self):
        cx, cy = person_center(make_body())
        self.assertAlmostEqual(cx, 0.5)
        self.assertAlmostEqual(cy, 0.4)

    def test_none_when_no_source_is_confident(self):
        self.assertIsNone(person_center(make_body(visibility=0.1)))

    def test_none_for_truncated_body(self):
        self.assertIsNone(person_center(make_body()[:20]))


class TestHandAssociation(unittest.TestCase):
    def test_hand_attached_by_label(self):
        record = map_person(make_body(), [make_hand(0.63, 0.52), make_hand(0.37, 0.52)], ["Left", "Right"], None, 1000, 1000)
        self.assertAlmostEqual(record.hand_left_keypoints_2d[0], 630.0)
        self.assertAlmostEqual(record.hand_left_keypoints_2d[2], 1.0)
        self.assertAlmostEqual(record.hand_right_keypoints_2d[0], 370.0)
        self.assertTrue(all(record.hand_right_keypoints_2d[i * 3 + 2] == 1.0 for i in range(HAND_KEYPOINT_COUNT)))

    def test_distance_of_exactly_threshold_is_excluded(self):
        record = map_person(centered_body(), [make_hand(0.5, 0.75)], ["Left"], None, 100, 100)
        self.assertEqual(record.hand_left_keypoints_2d, [0.0] * (HAND_KEYPOINT_COUNT * 3))

    def test_distance_just_inside_threshold_is_included(self):
        record = map_person(centered_body(), [make_hand(0.5, 0.74)], ["Left"], None, 100, 100)
        self.assertAlmostEqual(record.hand_left_keypoints_2d[1], 74.0)

    def test_no_center_means_no_hands(self):
        body = make_body(visibility=0.1)
        record = map_person(body, [make_hand(0.5, 0.4)], ["Right"], None, 100, 100)
        self.assertEqual(record.hand_right_keypoints_2d, [0.0] * (HAND_KEYPOINT_COUNT * 3))

    def test_missing_or_unknown_label_skipped(self):
        record = map_person(make_body(), [make_hand(0.5, 0.4), make_hand(0.5, 0.4)], [None, "Ambidextrous"], None, 100, 100)
        self.assertEqual(record.hand_left_keypoints_2d, [0.0] * (HAND_KEYPOINT_COUNT * 3))
        self.assertEqual(record.hand_right_keypoints_2d, [0.0] * (HAND_KEYPOINT_COUNT * 3))

        record = map_person(make_body(), [make_hand(0.5, 0.4)], [], None, 100, 100)
        self.assertEqual(record.hand_left_keypoints_2d, [0.0] * (HAND_KEYPOINT_COUNT * 3))

    def test_later_hand_overwrites_same_slot(self):
        hands = [make_hand(0.45, 0.45), make_hand(0.55, 0.45)]
        record = map_person(make_body(), hands, ["Left", "Left"], None, 100, 100)
        self.assertAlmostEqual(record.hand_left_keypoints_2d[0], 55.0)

    def test_hand_shared_by_two_nearby_people(self):
        raw = RawDetectionSet(
            width=100,
            height=100,
            body_landmark_sets=[make_body(dx=-0.05), make_body(dx=0.05)],
            hand_landmark_sets=[make_hand(0.5, 0.45)],
            handedness=["Right"],
        )
        doc = map_detections(raw)
        self.assertEqual(len(doc.people), 2)
        for person in doc.people:
            self.assertAlmostEqual(person.hand_right_keypoints_2d[0], 50.0)

    def test_far_hand_not_attached(self):
        record = map_person(make_body(), [make_hand(0.95, 0.95)], ["Left"], None, 100, 100)
        self.assertEqual(record.hand_left_keypoints_2d, [0.0] * (HAND_KEYPOINT_COUNT * 3))


class TestFaceMapping(unittest.TestCase):
    def test_face_without_visibility_gets_full_confidence(self):
        record = map_person(make_body(), [], [], make_face(), 200, 100)
        x, y, c = triple(record.face_keypoints_2d, 0)
        self.assertAlmostEqual(x, 0.45 * 200)
        self.assertAlmostEqual(y, 0.05 * 100)
        self.assertEqual(c, 1.0)
        self.assertEqual(triple(record.face_keypoints_2d, FACE_KEYPOINT_COUNT - 1)[2], 1.0)

    def test_positive_face_visibility_passes_through(self):
        record = map_person(make_body(), [], [], make_face(visibility=0.7), 100, 100)
        self.assertAlmostEqual(record.face_keypoints_2d[2], 0.7)

    def test_short_face_mesh_is_zero_padded(self):
        record = map_person(make_body(), [], [], make_face(count=468), 100, 100)
        self.assertEqual(len(record.face_keypoints_2d), FACE_KEYPOINT_COUNT * 3)
        self.assertEqual(triple(record.face_keypoints_2d, 470), [0.0, 0.0, 0.0])

    def test_faces_pair_with_bodies_by_index(self):
        raw = RawDetectionSet(
            width=100,
            height=100,
            body_landmark_sets=[make_body(), make_body(dx=0.2)],
            face_landmark_sets=[make_face(x0=0.1)],
        )
        doc = map_detections(raw)
        self.assertAlmostEqual(doc.people[0].face_keypoints_2d[0], 10.0)
        self.assertEqual(doc.people[1].face_keypoints_2d, [0.0] * (FACE_KEYPOINT_COUNT * 3))


class TestMapDetections(unittest.TestCase):
    def test_one_record_per_body(self):
        raw = RawDetectionSet(
            width=640,
            height=480,
            body_landmark_sets=[make_body(), make_body(dx=0.3)],
            hand_landmark_sets=[make_hand(0.63, 0.52), make_hand(0.37, 0.52), make_hand(0.9, 0.9)],
            handedness=["Left", "Right", "Left"],
            face_landmark_sets=[make_face()],
        )
        doc = map_detections(raw)
        self.assertIsInstance(doc, PoseDocument)
        self.assertEqual((doc.width, doc.height), (640, 480))
        self.assertEqual(len(doc.people), 2)

    def test_no_bodies_gives_empty_document(self):
        raw = RawDetectionSet(width=10, height=10, hand_landmark_sets=[make_hand(0.5, 0.5)], handedness=["Left"])
        self.assertEqual(map_detections(raw).people, [])

    def test_mapping_is_deterministic(self):
        raw = RawDetectionSet(
            width=640,
            height=480,
            body_landmark_sets=[make_body()],
            hand_landmark_sets=[make_hand(0.63, 0.52)],
            handedness=["Left"],
            face_landmark_sets=[make_face()],
        )
        self.assertEqual(map_detections(raw).to_dict(), map_detections(raw).to_dict())


class TestOpenPose70Face(unittest.TestCase):
    def test_reduces_mesh_to_seventy_points(self):
        record = map_person(make_body(), [], [], make_face(), 100, 100)
        face70 = face_to_openpose70(record.face_keypoints_2d)
        self.assertEqual(len(FACE_MESH_TO_OPENPOSE70), 70)
        self.assertEqual(len(face70), 210)
        for op_idx, mesh_idx in enumerate(FACE_MESH_TO_OPENPOSE70):
            self.assertEqual(triple(face70, op_idx), triple(record.face_keypoints_2d, mesh_idx))

    def test_pupils_are_iris_centers(self):
        self.assertEqual(FACE_MESH_TO_OPENPOSE70[68:], [468, 473])

    def test_short_mesh_leaves_missing_points_zero(self):
        face = [1.0, 2.0, 1.0] * 468
        face70 = face_to_openpose70(face)
        self.assertEqual(triple(face70, 68), [0.0, 0.0, 0.0])
        self.assertEqual(triple(face70, 0), [1.0, 2.0, 1.0])

    def test_document_face_layout(self):
        doc = map_detections(
            RawDetectionSet(width=100, height=100, body_landmark_sets=[make_body()], face_landmark_sets=[make_face()])
        )
        person = doc.to_dict(face_layout="openpose70")["people"][0]
        self.assertEqual(len(person["face_keypoints_2d"]), 210)
        person = doc.to_dict()["people"][0]
        self.assertEqual(len(person["face_keypoints_2d"]), FACE_KEYPOINT_COUNT * 3)


if __name__ == "__main__":
    unittest.main()
