from bonus_desk.config import DeskSettings, load_config


def test_defaults_match_reference_offer():
    settings = DeskSettings()
    assert settings.bonus.deposit == 100
    assert settings.bonus.wager_multiplier == 35
    assert settings.bonus.iterations == 2000
    assert [m.id for m in settings.bonus.metrics] == ["m1", "m2", "m3", "m4", "m5"]
    assert settings.display.histogram_bins == 20


def test_yaml_overlay(tmp_path):
    cfg_path = tmp_path / "desk.yaml"
    cfg_path.write_text(
        "db_path: {db}\n"
        "bonus:\n"
        "  mode: sportsbook\n"
        "  min_odds: 2.5\n"
        "  iterations: 500\n"
        "  metrics:\n"
        "    - id: churn\n"
        "      name: Churn\n"
        "      formula_type: CHURN_PROB\n"
        "      target: 0.2\n"
        "display:\n"
        "  histogram_bins: 12\n".format(db=tmp_path / "x.db")
    )
    settings = load_config(str(cfg_path))
    assert settings.db_path == str(tmp_path / "x.db")
    assert settings.bonus.mode == "sportsbook"
    assert settings.bonus.min_odds == 2.5
    assert settings.bonus.iterations == 500
    assert settings.bonus.metrics[0].formula_type.value == "CHURN_PROB"
    assert settings.display.histogram_bins == 12


def test_missing_config_file_falls_back_to_defaults(tmp_path):
    settings = load_config(str(tmp_path / "nope.yaml"))
    assert settings.bonus.mode == "casino"
