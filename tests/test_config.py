"""Tests for project-document loading and composer configuration."""

from __future__ import annotations

import json

from sprite_composer.config import (
    AnchorPoints,
    ComposerConfig,
    FULL_CANVAS,
    Layer,
    Rect,
    Trait,
    TraitCategory,
    load_project_layers,
)


class TestAnchorPoints:
    def test_dict(self):
        anchors = AnchorPoints.parse({"top": True, "bottom": False})
        assert anchors == AnchorPoints(top=True)

    def test_string(self):
        assert AnchorPoints.parse("Top and Bottom") == AnchorPoints(top=True, bottom=True)

    def test_list_with_all(self):
        assert AnchorPoints.parse(["All"]) == AnchorPoints(True, True, True, True)

    def test_list_of_edges(self):
        assert AnchorPoints.parse(["Left", "Right"]) == AnchorPoints(left=True, right=True)

    def test_missing(self):
        assert AnchorPoints.parse(None) == AnchorPoints()


class TestTraitLoading:
    def test_camel_case_document(self):
        trait = Trait.from_dict({
            "name": "Blue Cap",
            "rarity": 25,
            "imageUrl": "caps/blue.png",
            "category": "Head",
            "anchorPoints": {"bottom": True},
        })
        assert trait.name == "Blue Cap"
        assert trait.rarity == 25
        assert trait.image_reference == "caps/blue.png"
        assert trait.category is TraitCategory.HEAD
        assert trait.anchor_points.bottom
        assert trait.position is None

    def test_capitalised_fields_and_fallbacks(self):
        trait = Trait.from_dict({
            "Name": "Fur",
            "Category": "Tail",
            "Anchor Points": "all",
            "Position": {"x": 5, "y": 6, "width": 7, "height": 8},
        }, index=4)
        assert trait.name == "Fur"
        assert trait.category is TraitCategory.OTHER
        assert trait.anchor_points == AnchorPoints(True, True, True, True)
        assert trait.position == Rect(5, 6, 7, 8)
        assert trait.rarity is None

    def test_unnamed_trait(self):
        assert Trait.from_dict({}, index=2).name == "Trait 3"


class TestLayerLoading:
    def test_parent_spellings(self):
        assert Layer.from_dict({"name": "A", "parentLayer": "B"}).parent_layer_name == "B"
        assert Layer.from_dict({"name": "A", "parentLayerName": "C"}).parent_layer_name == "C"
        assert Layer.from_dict({"name": "A", "parentLayer": None}).parent_layer_name == ""

    def test_missing_position_is_full_canvas(self):
        assert Layer.from_dict({"name": "A"}).position == FULL_CANVAS

    def test_load_project_document(self, tmp_path):
        path = tmp_path / "project.json"
        path.write_text(json.dumps({
            "name": "Robots",
            "layers": [
                {"name": "Background", "parentLayer": "", "traits": [{"name": "Sky"}]},
                {"name": "Body", "parentLayer": "Background",
                 "position": {"x": 256, "y": 400, "width": 512, "height": 624},
                 "traits": []},
            ],
        }))
        layers = load_project_layers(path)
        assert [l.name for l in layers] == ["Background", "Body"]
        assert layers[1].position == Rect(256, 400, 512, 624)
        assert layers[1].traits == []

    def test_load_bare_list(self, tmp_path):
        path = tmp_path / "layers.json"
        path.write_text(json.dumps([{"name": "Only"}]))
        assert [l.name for l in load_project_layers(path)] == ["Only"]

    def test_round_trip(self):
        layer = Layer("Hat", "Head", Rect(1, 2, 3, 4), [Trait("Fez", 10, "fez.png")])
        again = Layer.from_dict(layer.to_dict())
        assert again == layer


class TestComposerConfig:
    def test_defaults(self):
        config = ComposerConfig()
        assert config.threshold == 60
        assert config.strict_threshold == 80
        assert config.max_combinations == 10000
        assert (0, 255, 0) in config.reference_colors

    def test_from_file_ignores_unknown_keys(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "threshold": 45,
            "reference_colors": [[1, 2, 3]],
            "unrelated": True,
        }))
        config = ComposerConfig.from_file(path)
        assert config.threshold == 45
        assert config.reference_colors == [(1, 2, 3)]
        assert config.noise_floor == 5000

    def test_to_dict_is_json_ready(self):
        d = ComposerConfig().to_dict()
        assert json.loads(json.dumps(d))["reference_colors"][1] == [0, 255, 0]
