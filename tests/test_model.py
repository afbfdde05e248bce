import unittest

from lightdesk_errors import DuplicateKeyError, MalformedInputError, NoSchemaError, NotFoundError
from lightdesk_model import ConfigModel
from lightdesk_schema import normalize_action_schemas, normalize_effect_schemas

EFFECT_SCHEMAS = normalize_effect_schemas(
    {
        "solid_color": {"args": {"color": {"type": "string", "default": "#ffffff"}}},
        "strobe": {"args": {"rate": {"type": "float64", "default": 4.0}}},
    }
)
ACTION_SCHEMAS = normalize_action_schemas(
    {
        "set_bpm": {"Parameters": [{"internal_name": "bpm", "data_type": "float64", "default_value": 120.0}]},
        "set_effect_enabled": {"Parameters": [{"internal_name": "enabled", "data_type": "bool"}]},
    }
)


def _payload():
    return {
        "Chains": [
            {
                "ID": "stage",
                "Priority": 2,
                "TickRate": 60,
                "NumLamps": 8,
                "Output": {"Type": "ddp", "Args": {"ip": "10.0.0.5"}, "ChannelMapping": "RGBW", "NumChannelsPerLamp": 4},
                "Effects": [
                    {"ID": "base", "Type": "solid_color", "Enabled": True, "Group": "", "Args": {"color": "#ff0000"}},
                ],
                "Comment": "front truss",
            }
        ],
        "events": {
            "drop": [
                {"type": "set_bpm", "params": {"bpm": 140.0}},
                {"type": "set_effect_enabled", "params": {"enabled": True}, "chain_id": "stage"},
                {"type": "set_bpm", "params": {"bpm": 90.0}},
            ],
            "calm": [],
        },
        "globals": {"bpm": 120},
    }


def _model(payload=None):
    return ConfigModel.from_payload(
        _payload() if payload is None else payload,
        effect_schemas=EFFECT_SCHEMAS,
        action_schemas=ACTION_SCHEMAS,
    )


class WireMappingTests(unittest.TestCase):
    def test_payload_round_trips_including_unknown_keys(self):
        payload = _payload()
        payload["Chains"][0]["Effects"][0]["Enabled"] = False
        self.assertEqual(_model(payload).to_payload(), payload)

    def test_missing_enabled_defaults_to_true(self):
        payload = _payload()
        del payload["Chains"][0]["Effects"][0]["Enabled"]
        model = _model(payload)
        self.assertTrue(model.effect("stage", "base").enabled)
        self.assertIs(model.to_payload()["Chains"][0]["Effects"][0]["Enabled"], True)

    def test_rejects_non_object_payload(self):
        with self.assertRaises(ValueError):
            ConfigModel.from_payload([])


class ChainOperationTests(unittest.TestCase):
    def test_add_chain_appends_default_chain(self):
        model = _model()
        chain = model.add_chain()
        self.assertEqual(len(model.chains), 2)
        self.assertEqual(chain.id, "newChain2")
        payload = model.to_payload()["Chains"][1]
        self.assertEqual(payload["Priority"], 0)
        self.assertEqual(payload["TickRate"], 100)
        self.assertEqual(payload["NumLamps"], 1)
        self.assertEqual(payload["Effects"], [])
        self.assertEqual(
            payload["Output"],
            {"Type": "artnet", "Args": {"ip": "127.0.0.1"}, "ChannelMapping": "RGB", "NumChannelsPerLamp": 3},
        )

    def test_remove_chain(self):
        model = _model()
        model.remove_chain("stage")
        self.assertEqual(model.chains, [])

    def test_remove_unknown_chain_is_not_found(self):
        model = _model()
        with self.assertRaises(NotFoundError):
            model.remove_chain("nope")
        self.assertEqual(len(model.chains), 1)

    def test_update_chain_field(self):
        model = _model()
        model.update_chain_field("stage", "tick_rate", 120)
        self.assertEqual(model.to_payload()["Chains"][0]["TickRate"], 120)
        with self.assertRaises(ValueError):
            model.update_chain_field("stage", "Output", {})

    def test_output_type_change_clears_args(self):
        model = _model()
        model.change_output_type("stage", "govee")
        output = model.to_payload()["Chains"][0]["Output"]
        self.assertEqual(output["Type"], "govee")
        self.assertEqual(output["Args"], {})
        self.assertEqual(output["ChannelMapping"], "RGBW")

    def test_output_field_and_arg_updates(self):
        model = _model()
        model.update_output_field("stage", "num_channels_per_lamp", 3)
        model.update_output_arg("stage", "ip", "10.0.0.9")
        output = model.chain("stage").output
        self.assertEqual(output.num_channels_per_lamp, 3)
        self.assertEqual(output.args, {"ip": "10.0.0.9"})


class EffectOperationTests(unittest.TestCase):
    def test_add_effect_uses_first_registered_type(self):
        model = _model()
        effect = model.add_effect("stage")
        self.assertEqual(effect.type, "solid_color")
        self.assertEqual(effect.id, "newEffect2")
        self.assertTrue(effect.enabled)
        self.assertEqual(effect.args, {})
        self.assertEqual(len(model.chain("stage").effects), 2)

    def test_add_effect_without_schemas_raises(self):
        model = ConfigModel.from_payload(_payload())
        with self.assertRaises(NoSchemaError):
            model.add_effect("stage")
        self.assertEqual(len(model.chain("stage").effects), 1)

    def test_type_change_clears_args_even_when_names_overlap(self):
        model = _model()
        model.update_effect_arg("stage", "base", "rate", 2.0)
        model.change_effect_type("stage", "base", "strobe")
        effect = model.effect("stage", "base")
        self.assertEqual(effect.type, "strobe")
        self.assertEqual(effect.args, {})

    def test_remove_effect_and_unknown_effect(self):
        model = _model()
        model.remove_effect("stage", "base")
        self.assertEqual(model.chain("stage").effects, [])
        with self.assertRaises(NotFoundError):
            model.remove_effect("stage", "base")

    def test_update_effect_fields(self):
        model = _model()
        model.update_effect_field("stage", "base", "enabled", False)
        model.update_effect_field("stage", "base", "group", "wash")
        effect = model.chain("stage").effects[0]
        self.assertFalse(effect.enabled)
        self.assertEqual(effect.group, "wash")


class EventOperationTests(unittest.TestCase):
    def test_remove_action_reindexes(self):
        model = _model()
        model.remove_action("drop", 1)
        actions = model.actions("drop")
        self.assertEqual(len(actions), 2)
        self.assertEqual([item.params["bpm"] for item in actions], [140.0, 90.0])

    def test_remove_action_out_of_range(self):
        model = _model()
        with self.assertRaises(NotFoundError):
            model.remove_action("drop", 3)

    def test_add_action_uses_first_registered_type(self):
        model = _model()
        action = model.add_action_to_event("calm")
        self.assertEqual(action.type, "set_bpm")
        self.assertEqual(action.params, {})

    def test_add_action_without_schemas_raises(self):
        model = ConfigModel.from_payload(_payload(), effect_schemas=EFFECT_SCHEMAS)
        with self.assertRaises(NoSchemaError):
            model.add_action_to_event("calm")

    def test_change_action_type_clears_params(self):
        model = _model()
        model.change_action_type("drop", 0, "set_effect_enabled")
        action = model.action("drop", 0)
        self.assertEqual(action.type, "set_effect_enabled")
        self.assertEqual(action.params, {})

    def test_add_and_remove_event(self):
        model = _model()
        self.assertEqual(model.add_event(), "newEvent3")
        self.assertEqual(model.events["newEvent3"], [])
        model.remove_event("calm")
        self.assertEqual(list(model.events), ["drop", "newEvent3"])

    def test_add_event_skips_names_still_in_use(self):
        model = _model()
        self.assertEqual(model.add_event(), "newEvent3")
        self.assertEqual(model.add_event(), "newEvent4")
        model.add_action_to_event("newEvent4")
        model.remove_event("newEvent3")
        self.assertEqual(model.add_event(), "newEvent5")
        self.assertEqual(len(model.actions("newEvent4")), 1)
        self.assertEqual(model.events["newEvent5"], [])

    def test_rename_event_keeps_order_and_actions(self):
        model = _model()
        model.rename_event("drop", "finale")
        self.assertEqual(list(model.events), ["finale", "calm"])
        self.assertEqual(len(model.actions("finale")), 3)

    def test_rename_event_collision_and_empty_name(self):
        model = _model()
        with self.assertRaises(DuplicateKeyError):
            model.rename_event("drop", "calm")
        with self.assertRaises(MalformedInputError):
            model.rename_event("drop", "  ")
        self.assertEqual(list(model.events), ["drop", "calm"])


class RevisionTests(unittest.TestCase):
    def test_mutations_bump_revision(self):
        model = _model()
        self.assertEqual(model.revision, 0)
        model.add_chain()
        model.update_chain_field("stage", "priority", 1)
        self.assertEqual(model.revision, 2)

    def test_failed_mutation_leaves_revision(self):
        model = _model()
        with self.assertRaises(NotFoundError):
            model.update_effect_arg("stage", "missing", "x", 1)
        self.assertEqual(model.revision, 0)


if __name__ == "__main__":
    unittest.main()
