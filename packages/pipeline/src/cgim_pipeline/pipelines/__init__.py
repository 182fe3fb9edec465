"""
cgim_pipeline.pipelines — Async orchestrators over ComexStat and the dictionary.

    from cgim_pipeline.pipelines import analytics, annual_series, basket_by_code

    points = await annual_series.fetch_basket_annual_series(client, "import", 2020, 2024, codes)
"""
